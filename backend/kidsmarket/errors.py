from fastapi import HTTPException

# Callable error codes and the HTTP status each one is served with
STATUS_BY_CODE = {
    "invalid-argument": 400,
    "failed-precondition": 400,
    "unauthenticated": 401,
    "permission-denied": 403,
    "not-found": 404,
    "unavailable": 502,
}


class CallableError(HTTPException):
    """Caller-visible error carrying a stable code, e.g. ``not-found``.

    Serialized by FastAPI as ``{"detail": {"code": ..., "message": ...}}``.
    """

    def __init__(self, code: str, message: str):
        super().__init__(status_code=STATUS_BY_CODE[code], detail={"code": code, "message": message})
        self.code = code
        self.message = message


def unauthenticated(message: str = "You must be logged in.") -> CallableError:
    return CallableError("unauthenticated", message)


def invalid_argument(message: str) -> CallableError:
    return CallableError("invalid-argument", message)


def not_found(message: str) -> CallableError:
    return CallableError("not-found", message)


def failed_precondition(message: str) -> CallableError:
    return CallableError("failed-precondition", message)


def permission_denied(message: str) -> CallableError:
    return CallableError("permission-denied", message)


def unavailable(message: str) -> CallableError:
    return CallableError("unavailable", message)
