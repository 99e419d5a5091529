from pydantic import BaseModel

from app.shared.config import config


def _split_csv(value: str | None) -> list[str]:
    return [x.strip() for x in (value or "").split(",") if x.strip()]


class AppEnvironConfig(BaseModel):
    DEBUG: bool = config.get("DEBUG", "false").strip().lower() == "true"  # type: ignore

    # HTTP / WebSocket server
    API_HOST: str = config.get("API_HOST", "0.0.0.0").strip()  # type: ignore
    API_PORT: int = int((config.get("API_PORT") or config.get("PORT") or "").strip() or 3000)
    # The session registry lives in process memory, so anything above 1 is clamped at startup.
    API_WORKERS: int = int((config.get("API_WORKERS") or "").strip() or 1)
    API_PREFIX: str = config.get("API_PREFIX", "").strip()  # type: ignore
    API_CORS_ORIGINS: list[str] = _split_csv(config.get("API_CORS_ORIGINS")) or ["*"]
    API_DISABLED: list[str] = _split_csv(config.get("API_DISABLED"))

    # Signaling relay
    SIGNALING_WS_PATH: str = config.get("SIGNALING_WS_PATH", "/ws").strip()  # type: ignore
    SWEEP_INTERVAL_SECONDS: float = float(
        (config.get("SWEEP_INTERVAL_SECONDS") or "").strip() or 30
    )
    # Must contain the `{session_id}` placeholder.
    VIEWER_JOIN_URL_TEMPLATE: str = config.get(
        "VIEWER_JOIN_URL_TEMPLATE", "/viewer.html?stream={session_id}"
    ).strip()  # type: ignore

    # Observability
    LOGFIRE_ENABLE: bool = config.get("LOGFIRE_ENABLE", "false").strip().lower() == "true"  # type: ignore
    LOGFIRE_TOKEN: str | None = (config.get("LOGFIRE_TOKEN") or "").strip() or None


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
