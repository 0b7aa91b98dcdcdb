from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base for API payloads: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UserSummary(CamelModel):
    id: int
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None


class PatientSummary(CamelModel):
    id: int
    user: Optional[UserSummary] = None


class DoctorSummary(CamelModel):
    id: int
    specialization: Optional[str] = None
    user: Optional[UserSummary] = None


class Page(CamelModel, Generic[T]):
    docs: List[T] = []
    total_docs: int = 0
    limit: int
    page: int = 1
    total_pages: int = 1
    has_prev_page: bool = False
    has_next_page: bool = False
    prev_page: Optional[int] = None
    next_page: Optional[int] = None


def build_page(schema, page: dict) -> Page:
    """Convert a paginated result of ORM rows into a typed page."""
    return Page[schema](
        **{**page, "docs": [schema.model_validate(doc) for doc in page["docs"]]}
    )
