"""Relay error taxonomy.

`AppError` is raised by the domain layer when a request cannot be honoured.
It carries a stable error code, a human readable message, a short resource id
used to correlate log lines with client-visible failures, and the WebSocket
close code the connection should be closed with.
"""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class AppErrorCode(str, Enum):
    """Stable error codes surfaced in logs and API failures."""

    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_PARAMS = "E_INVALID_PARAMS"

    # Session / role
    E_MISSING_SESSION_ID = "E_MISSING_SESSION_ID"
    E_SESSION_NOT_FOUND = "E_SESSION_NOT_FOUND"
    E_STREAM_UNAVAILABLE = "E_STREAM_UNAVAILABLE"
    E_ROLE_ALREADY_ASSIGNED = "E_ROLE_ALREADY_ASSIGNED"

    def __str__(self) -> str:
        return self.value


class WsCloseCode(IntEnum):
    """RFC 6455 close codes used by the relay."""

    NORMAL_CLOSURE = 1000
    GOING_AWAY = 1001
    POLICY_VIOLATION = 1008


class AppError(Exception):
    def __init__(
        self,
        errcode: AppErrorCode | str,
        errmesg: str,
        *,
        close_code: WsCloseCode = WsCloseCode.POLICY_VIOLATION,
    ):
        self.errcode = errcode.value if isinstance(errcode, Enum) else str(errcode)
        self.errmesg = errmesg
        self.close_code = close_code
        self.erresid = uuid4().hex[:10]

        caller = inspect.currentframe()
        caller = caller.f_back if caller else None
        if caller is not None:
            module_name = caller.f_globals.get("__name__", caller.f_code.co_filename)
            self.caller_info = f"{module_name}:{caller.f_code.co_name}:{caller.f_lineno}"
        else:
            self.caller_info = "unknown"

        super().__init__(f"{self.errcode}: {errmesg}")
