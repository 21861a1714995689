"""Tests for storygen.config: load_config, validate_config, provider_api_key."""

import pytest

from storygen.config import DEFAULTS, load_config, provider_api_key, validate_config
from storygen.errors import ConfigurationError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("STORYGEN_PROVIDER", "STORYGEN_MODEL", "ANTHROPIC_API_KEY", "GOOGLE_API_KEY"):
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    def test_defaults_fill_missing_keys(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("import_path: '@/ui'\nmax_attempts: 5\n")
        config = load_config(path)
        assert config["import_path"] == "@/ui"
        assert config["max_attempts"] == 5
        assert config["provider"] == DEFAULTS["provider"]

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == DEFAULTS

    def test_environment_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("provider: anthropic\n")
        monkeypatch.setenv("STORYGEN_PROVIDER", "gemini")
        monkeypatch.setenv("STORYGEN_MODEL", "gemini-2.5-pro")
        config = load_config(path)
        assert config["provider"] == "gemini"
        assert config["model"] == "gemini-2.5-pro"

    def test_fresh_copy_each_call(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("components: [Box]\n")
        first = load_config(path)
        first["components"].append("Card")
        assert load_config(path)["components"] == ["Box"]

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(tmp_path / "missing.yaml")
        assert exc_info.value.code == "CONFIG_ERROR"

    def test_malformed_yaml_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("components: [Box\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_shipped_config_is_valid(self):
        assert validate_config(load_config()) == []


class TestValidateConfig:
    def test_valid(self, config):
        assert validate_config(config) == []

    def test_unknown_provider(self, config):
        config["provider"] = "openai"
        errors = validate_config(config)
        assert len(errors) == 1
        assert "Unsupported provider 'openai'" in errors[0]

    def test_missing_import_path(self, config):
        config["import_path"] = ""
        assert validate_config(config) == ["Missing import_path for the component library."]

    @pytest.mark.parametrize("value", [0, -1, "3", True, None])
    def test_bad_max_attempts(self, config, value):
        config["max_attempts"] = value
        assert validate_config(config) == ["max_attempts must be a positive integer."]

    def test_bad_pattern_rules(self, config):
        config["pattern_rules"] = [{"attribute": "sx"}, {"message": "no target"}]
        errors = validate_config(config)
        assert errors == [
            "pattern_rules[0] must be a mapping with a 'message'.",
            "pattern_rules[1] needs an 'attribute' or a 'pattern'.",
        ]

    def test_invalid_regexes_reported(self, config):
        config["deny_list"] = {"patterns": ["^Custom.*", "^Styled(.*"]}
        config["pattern_rules"] = [{"message": "m", "pattern": "sx=(", "value": "ok"}]
        errors = validate_config(config)
        assert len(errors) == 2
        assert errors[0].startswith("pattern_rules[0].pattern is not a valid regular expression:")
        assert errors[1].startswith("deny_list.patterns[1] is not a valid regular expression:")


class TestProviderApiKey:
    def test_reads_provider_env(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "g-key")
        assert provider_api_key({"provider": "gemini"}) == "g-key"

    def test_missing_key(self):
        assert provider_api_key({"provider": "anthropic"}) is None

    def test_unknown_provider(self):
        assert provider_api_key({"provider": "openai"}) is None
