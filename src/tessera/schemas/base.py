"""Shared Pydantic base for the Tessera config schemas."""

from pydantic import BaseModel, ConfigDict


class TesseraBaseModel(BaseModel):
    """Strict model used by ParamConfig, UserConfig and InternalConfig.

    Unknown fields are rejected, assignments are re-validated, enum members
    are stored as their values and string inputs are stripped.
    """

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        use_enum_values=True,
        str_strip_whitespace=True,
    )
