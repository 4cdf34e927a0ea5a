"""InternalConfig: the frozen configuration handed to pipeline nodes.

Produced only by ``resolve_config``. Every field is filled in and already
checked, so nodes read values without defaults or guards of their own.
"""

from typing import Literal, Optional

from pydantic import ConfigDict

from tessera.schemas.base import TesseraBaseModel


# =============================================================================
# Nested Configuration Models (Runtime)
# =============================================================================

class InternalStreamingConfig(TesseraBaseModel):
    """Runtime streaming configuration."""
    number_of_stream_divisions: int
    splitter: Literal["slab", "tile"]
    verify_tiling: bool


class InternalFiltersConfig(TesseraBaseModel):
    """Runtime kernel defaults."""
    gaussian_sigma: float
    gaussian_truncate: float
    cast_dtype: str


class InternalLoggingConfig(TesseraBaseModel):
    """Log level and optional log directory."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    log_dir: Optional[str]


# =============================================================================
# Main InternalConfig
# =============================================================================

class InternalConfig(TesseraBaseModel):
    """Resolved streaming, kernel and logging settings.

    Nodes take one of these and read fields directly::

        divisions = config.streaming.number_of_stream_divisions

    The model is frozen; build a new one with ``resolve_config`` to change
    a value.
    """

    streaming: InternalStreamingConfig
    filters: InternalFiltersConfig
    logging: InternalLoggingConfig

    # merged with the TesseraBaseModel settings
    model_config = ConfigDict(frozen=True)
