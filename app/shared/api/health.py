from fastapi import APIRouter, Request

from app.relay_state import get_relay_state

from .utils import ApiSuccess

router = APIRouter()


@router.get('/health', response_model=ApiSuccess)
async def health(request: Request):
    registry = get_relay_state(request.app).registry
    return ApiSuccess(
        results={
            "status": "OK",
            "sessions": len(registry),
            "viewers": registry.viewer_count(),
        }
    )
