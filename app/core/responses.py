from typing import Any, Generic, Optional, TypeVar

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by every response: {statusCode, data, message, success}."""

    statusCode: int = 200
    data: Optional[T] = None
    message: str = "Success"
    success: bool = Field(default=True)

    @model_validator(mode="after")
    def derive_success(self):
        self.success = self.statusCode < 400
        return self


def error_response(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    """Render an error into the envelope."""
    body = ApiResponse[Any](statusCode=status_code, data=None, message=message)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body),
        headers=headers,
    )
