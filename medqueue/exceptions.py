from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse


class APIException(HTTPException):
    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)


class WaitlistValidationError(APIException):
    """Malformed input or a duplicate active entry; raised before any mutation."""

    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class WaitlistAuthorizationError(APIException):
    def __init__(self, detail: str = "Waitlist entry belongs to another patient"):
        super().__init__(status_code=403, detail=detail)


class WaitlistNotFoundError(APIException):
    def __init__(self, detail: str = "Waitlist entry not found"):
        super().__init__(status_code=404, detail=detail)


class StateConflictError(APIException):
    """Entry is not in the status the operation expects."""

    def __init__(self, detail: str, status_code: int = 409):
        super().__init__(status_code=status_code, detail=detail)


class OfferExpiredError(StateConflictError):
    def __init__(self, detail: str = "Notification has expired. The slot has been offered to the next person in line."):
        super().__init__(detail=detail, status_code=410)


class CapacityLostError(APIException):
    """The slot filled up between the offer and the conversion attempt."""

    retryable = True

    def __init__(self, detail: str = "Slot is no longer available, please try another slot"):
        super().__init__(status_code=409, detail=detail)


def create_error_response(error_message: str, status_code: int = 400) -> dict:
    """Create a standardized error response"""
    return {
        "success": False,
        "data": None,
        "error": error_message
    }


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom exception handler for HTTPException"""
    # Convert 403 from HTTPBearer to 401 for missing authentication
    if exc.status_code == 403 and "Not authenticated" in str(exc.detail):
        return JSONResponse(
            status_code=401,
            content=create_error_response("Authentication required", 401)
        )

    content = create_error_response(exc.detail, exc.status_code)
    if getattr(exc, "retryable", False):
        content["retryable"] = True
    return JSONResponse(status_code=exc.status_code, content=content)
