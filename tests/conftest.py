"""Shared fixtures: resolved configs and a small test image."""

import numpy as np
import pytest

from tessera.schemas import ParamConfig, UserConfig, resolve_config


# =============================================================================
# Configs
# =============================================================================

@pytest.fixture
def param_config():
    return ParamConfig()


@pytest.fixture
def internal_config(param_config):
    """InternalConfig with every value at its default."""
    return resolve_config(param_config, None)


@pytest.fixture
def make_config(param_config):
    """Callable turning UserConfig keywords into an InternalConfig.

    >>> config = make_config(DIVISIONS=4, SPLITTER="tile")
    """
    def _make(**user_overrides):
        return resolve_config(param_config, UserConfig(**user_overrides))

    return _make


# =============================================================================
# Data
# =============================================================================

@pytest.fixture
def image_100():
    """100x100 float64 image whose pixel values are all distinct."""
    return np.arange(100 * 100, dtype=np.float64).reshape(100, 100)


@pytest.fixture
def temp_dir(tmp_path):
    """Per-test scratch directory for NetCDF files and logs."""
    return tmp_path
