"""
Base model for every persisted schema object
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class StrictModel(BaseModel):
    """
    Closed-world model.

    Undeclared keys are rejected, and an explicit ``null`` supplied for an
    optional field is treated as if the key were absent. Required fields that
    are nullable (e.g. a move's ``power``) keep their ``None``.
    """

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def drop_null_optionals(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        optional = {
            name for name, field in cls.model_fields.items() if not field.is_required()
        }
        return {
            key: value
            for key, value in data.items()
            if not (value is None and key in optional)
        }
