"""ParamConfig: expert defaults for every tunable engine setting.

Each field carries its default and its bounds here and nowhere else.
Nodes never see this model; it is the lower layer merged by
``resolve_config``.
"""

from typing import Literal, Optional

import numpy as np
from pydantic import Field, field_validator

from tessera.schemas.base import TesseraBaseModel


# =============================================================================
# Nested Configuration Models
# =============================================================================

class StreamingConfig(TesseraBaseModel):
    """Streaming controller configuration."""
    number_of_stream_divisions: int = Field(
        10, ge=1, description="Requested number of passes per run"
    )
    splitter: Literal["slab", "tile"] = "slab"
    verify_tiling: bool = True

    @field_validator("splitter", mode="before")
    @classmethod
    def normalize_splitter_name(cls, v):
        """Splitter names are case-insensitive."""
        if isinstance(v, str):
            return v.lower().strip()
        return v


class FiltersConfig(TesseraBaseModel):
    """Defaults for the bundled compute kernels."""
    gaussian_sigma: float = Field(1.0, gt=0, description="Gaussian sigma in pixels")
    gaussian_truncate: float = Field(4.0, gt=0, description="Kernel radius in sigmas")
    cast_dtype: str = "float32"

    @field_validator("gaussian_sigma", "gaussian_truncate", mode="before")
    @classmethod
    def coerce_to_float(cls, v):
        """Integers are accepted for float fields."""
        return float(v)

    @field_validator("cast_dtype")
    @classmethod
    def validate_dtype(cls, v):
        """Accept any name numpy understands, store its canonical name."""
        try:
            return np.dtype(v).name
        except TypeError as exc:
            raise ValueError(f"Unknown pixel type: {v!r}") from exc


class LoggingConfig(TesseraBaseModel):
    """Root logger level and optional file output directory."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_dir: Optional[str] = None

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        if isinstance(v, str):
            return v.upper().strip()
        return v


# =============================================================================
# Main ParamConfig
# =============================================================================

class ParamConfig(TesseraBaseModel):
    """Expert defaults, grouped by concern.

    ``resolve_config(ParamConfig(), user_cfg)`` lays user overrides on top
    and validates the result against these same fields.
    """

    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    filters: FiltersConfig = Field(default_factory=FiltersConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
