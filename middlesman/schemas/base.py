"""Shared pydantic configuration: camelCase on the wire, snake_case in Python."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def enum_value(v: object) -> object:
    """Unwrap enum members so response fields carry the plain string."""
    if hasattr(v, "value"):
        return v.value
    return v


class Pagination(CamelModel):
    total: int
    page: int
    limit: int
