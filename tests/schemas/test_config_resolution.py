"""Test config resolution and validation with Pydantic."""

import pytest
from pydantic import ValidationError

from tessera.schemas import InternalConfig, ParamConfig, UserConfig, default_config
from tessera.schemas.resolve import deep_merge, resolve_config

pytestmark = pytest.mark.unit


class TestConfigResolution:
    """Test resolve_config() precedence and merging."""

    def test_resolve_config_all_defaults(self):
        """Resolving with no user overrides uses all ParamConfig defaults."""
        config = resolve_config(ParamConfig(), None)

        assert isinstance(config, InternalConfig)
        assert config.streaming.number_of_stream_divisions == 10
        assert config.streaming.splitter == "slab"
        assert config.streaming.verify_tiling is True
        assert config.filters.gaussian_sigma == 1.0
        assert config.filters.cast_dtype == "float32"
        assert config.logging.level == "INFO"
        assert config.logging.log_dir is None

    def test_default_config(self):
        assert default_config() == resolve_config(None, None)

    def test_user_config_overrides_param_config(self):
        """UserConfig values override ParamConfig defaults."""
        config = resolve_config(ParamConfig(), UserConfig(DIVISIONS=4, SIGMA=2))

        assert config.streaming.number_of_stream_divisions == 4
        assert config.filters.gaussian_sigma == 2.0

    def test_param_dict_accepted(self):
        config = resolve_config({"streaming": {"number_of_stream_divisions": 3}}, None)
        assert config.streaming.number_of_stream_divisions == 3
        assert config.streaming.splitter == "slab"

    def test_empty_user_dict_uses_param_defaults(self):
        config = resolve_config(ParamConfig(), {})
        assert config.streaming.number_of_stream_divisions == 10

    def test_nested_user_section_wins_over_flat_alias(self):
        user = UserConfig(DIVISIONS=4, streaming={"number_of_stream_divisions": 8})
        config = resolve_config(ParamConfig(), user)
        assert config.streaming.number_of_stream_divisions == 8

    def test_internal_config_is_frozen(self):
        config = resolve_config(ParamConfig(), None)
        with pytest.raises(ValidationError):
            config.streaming = None


class TestValidation:
    """User values are held to the expert constraints."""

    def test_zero_divisions_rejected(self):
        with pytest.raises(ValidationError):
            resolve_config(ParamConfig(), UserConfig(DIVISIONS=0))

    def test_unknown_splitter_rejected(self):
        with pytest.raises(ValidationError):
            resolve_config(ParamConfig(), UserConfig(SPLITTER="hilbert"))

    def test_negative_sigma_rejected(self):
        with pytest.raises(ValidationError):
            resolve_config(ParamConfig(), UserConfig(SIGMA=-1))

    def test_dtype_name_normalized(self):
        config = resolve_config(ParamConfig(), UserConfig(CAST_DTYPE="f4"))
        assert config.filters.cast_dtype == "float32"

    def test_bad_dtype_rejected(self):
        with pytest.raises(ValidationError):
            resolve_config(ParamConfig(), UserConfig(CAST_DTYPE="not-a-type"))

    def test_param_config_forbids_unknown_keys(self):
        with pytest.raises(ValidationError):
            ParamConfig.model_validate({"streaming": {"divisions": 3}})


class TestUserConfigAliases:
    """Test UserConfig flat aliases map correctly."""

    def test_uppercase_keys_are_handled(self):
        user = UserConfig.model_validate({
            "DIVISIONS": 6,
            "SPLITTER": " Tile ",
            "LOG_LEVEL": "debug",
            "LOG_DIR": "/tmp/tessera_logs",
        })
        config = resolve_config(ParamConfig(), user)

        assert config.streaming.number_of_stream_divisions == 6
        assert config.streaming.splitter == "tile"
        assert config.logging.level == "DEBUG"
        assert config.logging.log_dir == "/tmp/tessera_logs"

    def test_field_names_accepted(self):
        user = UserConfig(number_of_stream_divisions=5, verify_tiling=False)
        config = resolve_config(ParamConfig(), user)
        assert config.streaming.number_of_stream_divisions == 5
        assert config.streaming.verify_tiling is False

    def test_unknown_keys_are_ignored(self):
        user = UserConfig.model_validate({"DIVISIONS": 2, "UNKNOWN_LEGACY": 12345})
        assert user.number_of_stream_divisions == 2
        assert not hasattr(user, "UNKNOWN_LEGACY")

    def test_overrides_only_contain_set_values(self):
        assert UserConfig().to_internal_overrides() == {}
        assert UserConfig(TRUNCATE=3).to_internal_overrides() == {
            "filters": {"gaussian_truncate": 3.0}
        }


def test_deep_merge():
    base = {"a": 1, "b": {"c": 2, "d": 3}}
    override = {"b": {"d": 4, "e": 5}, "f": 6}
    assert deep_merge(base, override) == {"a": 1, "b": {"c": 2, "d": 4, "e": 5}, "f": 6}
    assert base == {"a": 1, "b": {"c": 2, "d": 3}}
