from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class APIModel(BaseModel):
    """Base for every request/response body; fields travel as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MessageResponse(APIModel):
    success: bool = True
    message: str


class PageMeta(APIModel):
    success: bool = True
    count: int
    total: int
    pages: int
    current_page: int


def page_count(total: int, limit: int) -> int:
    return -(-total // limit) if limit else 0
