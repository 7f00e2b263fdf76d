"""Base models for registry and state file serialization."""

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic.alias_generators import to_camel


class CamelCaseModel(BaseModel):
    """Base model for JSON files that use camelCase keys.

    Fields are declared in snake_case and read or written as camelCase;
    snake_case input is accepted too.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
