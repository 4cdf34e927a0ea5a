"""Pydantic configuration schemas for Tessera.

Three layers: ParamConfig holds expert defaults, UserConfig holds the
overrides a user writes, and ``resolve_config`` merges them into the frozen
InternalConfig that nodes read. ``default_config`` is the no-override case.
"""

from tessera.schemas.resolve import default_config, resolve_config
from tessera.schemas.internal import InternalConfig
from tessera.schemas.param import ParamConfig
from tessera.schemas.user import UserConfig

__all__ = [
    'resolve_config',
    'default_config',
    'InternalConfig',
    'ParamConfig',
    'UserConfig',
]
