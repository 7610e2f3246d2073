"""Map domain errors onto HTTP errors."""

from fastapi import HTTPException

from backend.srs.grading import GradingError


def grading_http_error(error: GradingError) -> HTTPException:
    """Translate a GradingError into the HTTPException the client should see."""
    if error.code == "INVALID_INPUT":
        return HTTPException(status_code=422, detail=str(error))
    if error.code == "RATE_LIMIT":
        return HTTPException(status_code=429, detail=str(error))
    return HTTPException(
        status_code=502,
        detail={"message": str(error), "code": error.code, "retryable": error.retryable},
    )
