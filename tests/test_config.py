"""Tests for hearth.config: TOML loading, CLI merge, credential resolution."""

import argparse
import tomllib

import pytest

from hearth.config import (
    _UNSET,
    DEFAULT_MODEL,
    ConfigError,
    apply_config_to_args,
    generate_config,
    global_config_dir,
    load_config,
    resolve_credentials,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_toml(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _make_args(**overrides):
    """Build a namespace mimicking build_parser() with _UNSET sentinels."""
    defaults = {
        "provider": _UNSET,
        "model": _UNSET,
        "api_key": _UNSET,
        "base_url": _UNSET,
        "api_version": _UNSET,
        "temperature": _UNSET,
        "system_prompt": _UNSET,
        "max_tool_rounds": _UNSET,
        "color": _UNSET,
        "no_color": _UNSET,
        "quiet": _UNSET,
        "debug": _UNSET,
    }
    defaults.update(overrides)
    return argparse.Namespace(**defaults)


@pytest.fixture
def config_home(tmp_path, monkeypatch):
    home = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home))
    return home / "hearth"


# ---------------------------------------------------------------------------
# load_config
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_global_dir_respects_xdg(self, config_home):
        assert global_config_dir() == config_home

    def test_no_files(self, tmp_path, config_home):
        assert load_config(tmp_path) == {}

    def test_project_overrides_global(self, tmp_path, config_home):
        _write_toml(config_home / "config.toml", 'model = "gpt-4o"\nquiet = true\n')
        project = tmp_path / "proj"
        _write_toml(project / "hearth.toml", 'model = "gpt-4o-mini"\n')

        config = load_config(project)
        assert config == {"model": "gpt-4o-mini", "quiet": True}

    def test_invalid_toml(self, tmp_path, config_home):
        _write_toml(tmp_path / "hearth.toml", "model = ")
        with pytest.raises(ConfigError, match="invalid TOML"):
            load_config(tmp_path)

    def test_wrong_type(self, tmp_path, config_home):
        _write_toml(tmp_path / "hearth.toml", "max_tool_rounds = \"two\"\n")
        with pytest.raises(ConfigError, match="expected int"):
            load_config(tmp_path)

    def test_bool_rejected_for_int(self, tmp_path, config_home):
        _write_toml(tmp_path / "hearth.toml", "max_tool_rounds = true\n")
        with pytest.raises(ConfigError, match="got bool"):
            load_config(tmp_path)

    def test_temperature_accepts_int_or_float(self, tmp_path, config_home):
        _write_toml(tmp_path / "hearth.toml", "temperature = 1\n")
        assert load_config(tmp_path) == {"temperature": 1}

    def test_bad_provider(self, tmp_path, config_home):
        _write_toml(tmp_path / "hearth.toml", 'provider = "llama"\n')
        with pytest.raises(ConfigError, match="provider"):
            load_config(tmp_path)

    def test_zero_tool_rounds(self, tmp_path, config_home):
        _write_toml(tmp_path / "hearth.toml", "max_tool_rounds = 0\n")
        with pytest.raises(ConfigError, match="at least 1"):
            load_config(tmp_path)

    def test_unknown_key_warns_and_is_dropped(self, tmp_path, config_home, capsys):
        _write_toml(tmp_path / "hearth.toml", 'wat = 1\nmodel = "m"\n')
        assert load_config(tmp_path) == {"model": "m"}
        assert "unknown config key 'wat'" in capsys.readouterr().err

    def test_api_key_in_git_project_warns(self, tmp_path, config_home, capsys):
        (tmp_path / ".git").mkdir()
        _write_toml(tmp_path / "hearth.toml", 'api_key = "sk-secret"\n')
        load_config(tmp_path)
        assert "git-tracked" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# apply_config_to_args
# ---------------------------------------------------------------------------


class TestApplyConfig:
    def test_defaults_fill_unset(self):
        args = _make_args()
        apply_config_to_args(args, {})
        assert args.max_tool_rounds == 1
        assert args.model is None
        assert args.quiet is False
        assert args.color is False and args.no_color is False

    def test_config_fills_unset(self):
        args = _make_args()
        apply_config_to_args(args, {"model": "m", "max_tool_rounds": 3})
        assert args.model == "m"
        assert args.max_tool_rounds == 3

    def test_cli_wins(self):
        args = _make_args(model="cli-model")
        apply_config_to_args(args, {"model": "config-model"})
        assert args.model == "cli-model"

    def test_color_key_sets_pair(self):
        args = _make_args()
        apply_config_to_args(args, {"color": False})
        assert args.color is False
        assert args.no_color is True

    def test_cli_color_flag_beats_config(self):
        args = _make_args(no_color=True)
        apply_config_to_args(args, {"color": True})
        assert args.no_color is True
        assert args.color is False


# ---------------------------------------------------------------------------
# resolve_credentials
# ---------------------------------------------------------------------------


class TestCredentials:
    def test_missing_everything(self):
        with pytest.raises(ConfigError, match="CLIENT_KEY"):
            resolve_credentials(environ={})

    def test_openai_from_env(self):
        creds = resolve_credentials(environ={"CLIENT_KEY": "sk-1"})
        assert creds.provider == "openai"
        assert creds.api_key == "sk-1"
        assert creds.model == DEFAULT_MODEL

    def test_azure_preferred_when_both_set(self):
        creds = resolve_credentials(
            environ={
                "CLIENT_KEY": "sk-1",
                "AZURE_CLIENT_KEY": "az-1",
                "CLIENT_ENDPOINT": "https://x.openai.azure.com",
            }
        )
        assert creds.provider == "azure"
        assert creds.api_key == "az-1"
        assert creds.base_url == "https://x.openai.azure.com"

    def test_azure_without_endpoint(self):
        with pytest.raises(ConfigError, match="CLIENT_ENDPOINT"):
            resolve_credentials(environ={"AZURE_CLIENT_KEY": "az-1"})

    def test_model_id_env(self):
        creds = resolve_credentials(environ={"CLIENT_KEY": "k", "MODEL_ID": "gpt-4.1"})
        assert creds.model == "gpt-4.1"

    def test_explicit_values_win(self):
        creds = resolve_credentials(
            provider="openai",
            model="m",
            api_key="explicit",
            base_url="http://localhost:1234/v1",
            environ={"CLIENT_KEY": "env"},
        )
        assert creds.api_key == "explicit"
        assert creds.model == "m"
        assert creds.base_url == "http://localhost:1234/v1"

    def test_explicit_key_without_env(self):
        creds = resolve_credentials(api_key="k", environ={})
        assert creds.provider == "openai"

    def test_explicit_provider_without_key(self):
        with pytest.raises(ConfigError, match="CLIENT_KEY"):
            resolve_credentials(provider="openai", environ={})

    def test_azure_api_version_env(self):
        creds = resolve_credentials(
            provider="azure",
            api_key="k",
            base_url="https://e",
            environ={"AZURE_API_VERSION": "2025-01-01"},
        )
        assert creds.api_version == "2025-01-01"


# ---------------------------------------------------------------------------
# generate_config
# ---------------------------------------------------------------------------


def test_generated_template_is_valid_toml():
    for project in (False, True):
        text = generate_config(project=project)
        assert tomllib.loads(text) == {}
        assert "max_tool_rounds" in text
