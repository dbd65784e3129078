# glowglitch/schemas/common.py
from __future__ import annotations

from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

# Money stays Decimal in Python and goes out as a JSON number.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class APIModel(BaseModel):
    """
    Base for request/response bodies.

    Python attributes are snake_case; the wire format is camelCase (what the
    dashboards send and read). Either spelling is accepted on input.
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class PaginationOut(APIModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class BulkResultOut(APIModel):
    modified_count: int
    message: str
