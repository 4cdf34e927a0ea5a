"""Build the runtime config from expert defaults and user overrides.

``resolve_config`` is the only place where configs are combined. User
values win over ParamConfig defaults, and the result is checked again
against the expert constraints before it is frozen as an InternalConfig.
"""

from typing import Optional, Union

from tessera.schemas.internal import InternalConfig
from tessera.schemas.param import ParamConfig
from tessera.schemas.user import UserConfig


def deep_merge(base: dict, *overrides: dict) -> dict:
    """Return ``base`` updated by each of ``overrides`` in turn.

    Dict values present on both sides are merged key by key; any other
    value from an override replaces the one in ``base``. The inputs are
    left untouched.

    >>> deep_merge({"s": {"n": 10, "k": "slab"}}, {"s": {"n": 4}})
    {'s': {'n': 4, 'k': 'slab'}}
    """
    merged = dict(base)
    for override in overrides:
        for key, value in override.items():
            current = merged.get(key)
            if isinstance(current, dict) and isinstance(value, dict):
                merged[key] = deep_merge(current, value)
            else:
                merged[key] = value
    return merged


def _as_param(param_cfg) -> ParamConfig:
    if param_cfg is None:
        return ParamConfig()
    if isinstance(param_cfg, ParamConfig):
        return param_cfg
    return ParamConfig.model_validate(param_cfg)


def _as_user(user_cfg) -> UserConfig:
    if isinstance(user_cfg, UserConfig):
        return user_cfg
    return UserConfig.model_validate(user_cfg or {})


def resolve_config(
    param_cfg: Optional[Union[dict, ParamConfig]] = None,
    user_cfg: Optional[Union[dict, UserConfig]] = None,
) -> InternalConfig:
    """Merge ``param_cfg`` and ``user_cfg`` into a frozen InternalConfig.

    Parameters
    ----------
    param_cfg : dict or ParamConfig, optional
        Expert defaults. ``None`` uses ``ParamConfig()``.
    user_cfg : dict or UserConfig, optional
        Overrides, flat aliases (``DIVISIONS``) or nested sections.

    Returns
    -------
    InternalConfig

    Raises
    ------
    pydantic.ValidationError
        When a value breaks a range or name constraint.

    Examples
    --------
    >>> config = resolve_config(ParamConfig(), UserConfig(DIVISIONS=4))
    >>> config.streaming.number_of_stream_divisions
    4
    """
    param = _as_param(param_cfg)
    user = _as_user(user_cfg)

    merged = deep_merge(param.model_dump(), user.to_internal_overrides())
    # user values must satisfy the same bounds as the defaults
    checked = ParamConfig.model_validate(merged)
    return InternalConfig.model_validate(checked.model_dump())


def default_config() -> InternalConfig:
    """InternalConfig built from expert defaults only."""
    return resolve_config(ParamConfig(), None)
