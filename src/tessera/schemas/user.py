"""UserConfig: the short, lenient config users write.

Only the values a user wants to change are given. Flat upper-case aliases
(``DIVISIONS``, ``SIGMA``, ``LOG_LEVEL``...) cover the common settings and
nested ``streaming``/``filters``/``logging`` sections reach the rest.
Unknown keys are dropped; range checks happen later, in ``resolve_config``.
"""

from typing import Optional

from pydantic import Field, field_validator

from tessera.schemas.base import TesseraBaseModel


class UserStreamingConfig(TesseraBaseModel):
    """Nested streaming overrides."""
    number_of_stream_divisions: Optional[int] = None
    splitter: Optional[str] = None
    verify_tiling: Optional[bool] = None

    @field_validator("splitter", mode="before")
    @classmethod
    def lower_splitter(cls, v):
        return v.lower().strip() if isinstance(v, str) else v


class UserFiltersConfig(TesseraBaseModel):
    """Nested kernel overrides."""
    gaussian_sigma: Optional[float] = None
    gaussian_truncate: Optional[float] = None
    cast_dtype: Optional[str] = None


class UserLoggingConfig(TesseraBaseModel):
    """Nested logging overrides."""
    level: Optional[str] = None
    log_dir: Optional[str] = None


# flat field -> (section, InternalConfig field)
_FLAT_FIELDS = {
    "number_of_stream_divisions": ("streaming", "number_of_stream_divisions"),
    "splitter": ("streaming", "splitter"),
    "verify_tiling": ("streaming", "verify_tiling"),
    "sigma": ("filters", "gaussian_sigma"),
    "truncate": ("filters", "gaussian_truncate"),
    "cast_dtype": ("filters", "cast_dtype"),
    "log_level": ("logging", "level"),
    "log_dir": ("logging", "log_dir"),
}


class UserConfig(TesseraBaseModel):
    """Overrides on top of the ParamConfig defaults.

    Example
    -------
        user_cfg = UserConfig(DIVISIONS=16, SPLITTER="tile", SIGMA=2)
        config = resolve_config(ParamConfig(), user_cfg)

    A value given in a nested section wins over the same value given
    through a flat alias.
    """

    number_of_stream_divisions: Optional[int] = Field(None, alias="DIVISIONS")
    splitter: Optional[str] = Field(None, alias="SPLITTER")
    verify_tiling: Optional[bool] = Field(None, alias="VERIFY_TILING")

    sigma: Optional[float] = Field(None, alias="SIGMA")
    truncate: Optional[float] = Field(None, alias="TRUNCATE")
    cast_dtype: Optional[str] = Field(None, alias="CAST_DTYPE")

    log_level: Optional[str] = Field(None, alias="LOG_LEVEL")
    log_dir: Optional[str] = Field(None, alias="LOG_DIR")

    streaming: Optional[UserStreamingConfig] = None
    filters: Optional[UserFiltersConfig] = None
    logging: Optional[UserLoggingConfig] = None

    model_config = TesseraBaseModel.model_config.copy()
    model_config.update({"populate_by_name": True, "extra": "ignore"})

    @field_validator("sigma", "truncate", mode="before")
    @classmethod
    def to_float(cls, v):
        return None if v is None else float(v)

    @field_validator("splitter", mode="before")
    @classmethod
    def lower_splitter(cls, v):
        return v.lower().strip() if isinstance(v, str) else v

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v):
        return v.upper().strip() if isinstance(v, str) else v

    def to_internal_overrides(self) -> dict:
        """Nested dict, shaped like InternalConfig, of the values set here."""
        overrides = {}
        for flat_name, (section, key) in _FLAT_FIELDS.items():
            value = getattr(self, flat_name)
            if value is not None:
                overrides.setdefault(section, {})[key] = value

        for section in ("streaming", "filters", "logging"):
            nested = getattr(self, section)
            if nested is None:
                continue
            values = nested.model_dump(exclude_none=True)
            if values:
                overrides.setdefault(section, {}).update(values)
        return overrides
