import inspect
from functools import lru_cache
from importlib import import_module
from os import environ
from pathlib import Path
from typing import Any, Literal
from uuid import uuid4

from fastapi import APIRouter, FastAPI
from loguru import logger
from pydantic import BaseModel, Field

from app.utils.app_errors import AppErrorCode

APP_ROOT = Path(__file__).resolve().parents[2]

# Packages scanned for modules exposing a module-level `router`.
ROUTE_PACKAGES = ("app.shared.api", "app.api")


def format_error(ex: BaseException) -> str:
    from traceback import TracebackException

    return ''.join(TracebackException.from_exception(ex).format())


class ApiResponse(BaseModel):
    version: str | None = Field(default_factory=lambda: environ.get('BUILD_COMMIT', 'dev'))


class ApiSuccess(ApiResponse):
    success: Literal[True] = True
    results: Any = "OK"


class ApiFailure(ApiResponse):
    success: Literal[False] = False
    errcode: str = AppErrorCode.E_INTERNAL_ERROR.value
    erresid: str = Field(default_factory=lambda: uuid4().hex[:10])
    errmesg: str = 'We are sorry, an error occurred.'


def api_failure(errcode: str | None = None, errmesg: Exception | str | None = None, *, trace: Any = None):
    if not errcode:
        errcode = ApiFailure.model_fields['errcode'].default

    if isinstance(errmesg, Exception):
        errmesg = format_error(errmesg)

    if not errmesg:
        errmesg = ApiFailure.model_fields['errmesg'].default

    failure = ApiFailure(errcode=str(errcode), errmesg=errmesg)

    caller_frame = inspect.stack(context=0)[1]
    module = inspect.getmodule(caller_frame.frame)
    module_name = module.__name__ if module and getattr(module, "__name__", None) else caller_frame.filename
    caller_info = f"{module_name}:{caller_frame.function}:{caller_frame.lineno}"

    logger.warning(
        f'{failure.errcode} {failure.erresid}\n{failure.errmesg} '
        f'caller={caller_info} trace={trace}'
    )

    return failure


def load_routes(app: FastAPI, prefix: str):
    for package in ROUTE_PACKAGES:
        load_routes_in_package(app, prefix, package)

    for route_info in get_all_routes_info(app):
        methods = ','.join(route_info['methods']) or 'WS'
        logger.info('Loaded route: {:<12} {:<60} {}', methods, route_info['path'], route_info['endpoint'])


def load_routes_in_package(app: FastAPI, prefix: str, package: str):
    from app.app_config import get_app_environ_config

    disabled_routes = get_app_environ_config().API_DISABLED
    logger.debug('disabled routes: {}', disabled_routes)

    folder = APP_ROOT.joinpath(*package.split('.')[1:])

    for x in sorted(folder.rglob('*.py')):
        if x.name == '__init__.py':
            continue

        relative_path = x.relative_to(folder).with_suffix('')
        name = '.'.join((package, *relative_path.parts))

        disabled = False
        for disabled_route in disabled_routes:
            if f'.{disabled_route}' in name:
                logger.warning('disabled route {} in {}', disabled_route, name)
                disabled = True
                break
        if disabled:
            continue

        try:
            module = import_module(name)
        except ImportError as e:
            logger.warning('Failed to import {}: {}', name, e)
            continue

        if isinstance(getattr(module, "router", None), APIRouter):
            app.include_router(module.router, prefix=prefix)
            logger.info('Added routes in {}', name)


def get_all_routes_info(app: FastAPI):
    routes_info = []

    for route in app.routes:
        if not hasattr(route, 'endpoint'):
            continue
        endpoint_name = route.endpoint.__name__ if hasattr(route.endpoint, '__name__') else str(route.endpoint)
        routes_info.append(
            {
                "methods": sorted(getattr(route, 'methods', None) or []),
                "path": route.path,
                "name": route.name,
                "endpoint": endpoint_name,
            }
        )

    return routes_info


@lru_cache
def get_worker_info():
    worker_name = environ.get('WORKER_NAME', APP_ROOT.parent.name)

    parts = environ.get('BUILD_COMMIT', '').split('-')
    commit_id = parts[1] if len(parts) > 1 else 'dev'

    return worker_name, commit_id, uuid4().hex[:8]


def init_logger():
    import sys
    import logging
    from app.app_config import get_app_environ_config

    for name in ('websockets', 'websockets.server', 'granian', '_granian'):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.remove()

    worker_name, commit_id, _ = get_worker_info()

    if get_app_environ_config().DEBUG:
        logger_level = 'DEBUG'
        logger_format = (
            f'<yellow>{worker_name}:{commit_id}</yellow> | '
            '<green>{time:MM-DD HH:mm:ss.SSS}</green> | '
            '<level>{level: <8}</level> | '
            '<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | '
            '<level>{message}</level>'
        )
    else:
        logger_level = 'INFO'
        logger_format = (
            f'{worker_name}:{commit_id} | '
            '{time:MM-DD HH:mm:ss.SSS} | '
            '{level: <8} | '
            '{name}:{function}:{line} | '
            '{message}'
        )
    logger.add(sys.stderr, level=logger_level, format=logger_format)
