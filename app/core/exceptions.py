from fastapi import HTTPException, status


class ApiError(HTTPException):
    """Base class for errors rendered into the response envelope."""

    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail_default = "Something went wrong"

    def __init__(self, detail: str = None, headers: dict = None):
        super().__init__(
            status_code=self.status_code_default,
            detail=detail or self.detail_default,
            headers=headers,
        )


class BadRequestError(ApiError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    detail_default = "Bad request"


class UnauthorizedError(ApiError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    detail_default = "Unauthorized request"


class ForbiddenError(ApiError):
    status_code_default = status.HTTP_403_FORBIDDEN
    detail_default = "Forbidden"


class NotFoundError(ApiError):
    status_code_default = status.HTTP_404_NOT_FOUND
    detail_default = "The requested resource was not found"


class ConflictError(ApiError):
    status_code_default = status.HTTP_409_CONFLICT
    detail_default = "Resource already exists"


class InternalServerError(ApiError):
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail_default = "An unexpected error occurred"


def parse_id(value, label: str) -> int:
    """Parse a record id from a path or body value, raising 400 when malformed."""
    if isinstance(value, bool):
        raise BadRequestError(f"Invalid {label} ID.")
    if isinstance(value, int):
        candidate = value
    else:
        text = str(value).strip() if value is not None else ""
        if not text.isdigit():
            raise BadRequestError(f"Invalid {label} ID.")
        candidate = int(text)
    if candidate < 1:
        raise BadRequestError(f"Invalid {label} ID.")
    return candidate
