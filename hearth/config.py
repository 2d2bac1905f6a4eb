"""Configuration file loading, credential resolution and CLI merging.

Reads TOML config from ~/.config/hearth/config.toml (global) and
./hearth.toml (project). Precedence: CLI > project > global > environment
> defaults. Credentials normally come from the environment.
"""

import argparse
import os
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .report import ConfigError  # noqa: F401 — re-export for convenience

_UNSET = object()  # Sentinel for "not set by CLI"

DEFAULT_MODEL = "gpt-4o"

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant with smart home capabilities. "
    "You can control lights in different locations using the available functions. "
    "When users ask about lighting, use the appropriate functions to help them."
)

MISSING_CREDENTIALS_HELP = (
    "No API credentials found. Please set the required environment variables:\n"
    "  - For OpenAI: CLIENT_KEY\n"
    "  - For Azure OpenAI: AZURE_CLIENT_KEY and CLIENT_ENDPOINT\n"
    "  - Optional: MODEL_ID (defaults to gpt-4o)"
)


# --- Schema ---

CONFIG_KEYS: dict[str, type | tuple[type, ...]] = {
    "provider": str,
    "model": str,
    "api_key": str,
    "base_url": str,
    "api_version": str,
    "temperature": (int, float),
    "system_prompt": str,
    "max_tool_rounds": int,
    "color": bool,
    "quiet": bool,
    "debug": bool,
}

PROVIDERS = ("openai", "azure")

# Argparse dest -> hardcoded default
_ARGPARSE_DEFAULTS: dict[str, Any] = {
    "provider": None,
    "model": None,
    "api_key": None,
    "base_url": None,
    "api_version": None,
    "temperature": None,
    "system_prompt": None,
    "max_tool_rounds": 1,
    "color": False,
    "no_color": False,
    "quiet": False,
    "debug": False,
}


# --- Internal helpers ---


def global_config_dir() -> Path:
    """Return the global config directory, respecting XDG_CONFIG_HOME."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "hearth"
    return Path.home() / ".config" / "hearth"


def _type_name(expected: type | tuple[type, ...]) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


def _validate_config(config: dict, source: str) -> None:
    """Validate types and values in a parsed config dict.

    Raises ConfigError for type mismatches or invalid values.
    Prints warnings for unknown keys.
    """
    for key, value in config.items():
        if key not in CONFIG_KEYS:
            print(f"warning: {source}: unknown config key {key!r}", file=sys.stderr)
            continue

        expected = CONFIG_KEYS[key]
        # bool is a subclass of int; reject bools for non-bool fields.
        if isinstance(value, bool) and expected is not bool:
            raise ConfigError(
                f"{source}: {key!r} expected {_type_name(expected)}, got bool"
            )
        if not isinstance(value, expected):
            raise ConfigError(
                f"{source}: {key!r} expected {_type_name(expected)}, got {type(value).__name__}"
            )

    if "provider" in config and config["provider"] not in PROVIDERS:
        raise ConfigError(
            f"{source}: 'provider' must be one of {', '.join(PROVIDERS)}, "
            f"got {config['provider']!r}"
        )
    if "max_tool_rounds" in config and config["max_tool_rounds"] < 1:
        raise ConfigError(f"{source}: 'max_tool_rounds' must be at least 1")


def _check_api_key_in_git(config: dict, config_path: Path) -> None:
    """Warn if api_key is set in a project config inside a git repo."""
    if "api_key" not in config:
        return
    parent = config_path.parent
    while parent != parent.parent:
        if (parent / ".git").exists():
            print(
                f"warning: {config_path}: 'api_key' in a git-tracked project config "
                f"may be committed accidentally. Consider using an environment variable.",
                file=sys.stderr,
            )
            return
        parent = parent.parent


def _load_single(path: Path, label: str) -> dict:
    """Load and validate a single TOML config file. Returns empty dict if missing."""
    if not path.is_file():
        return {}
    try:
        with open(path, "rb") as f:
            config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{label}: invalid TOML: {e}") from e

    _validate_config(config, label)
    return {k: v for k, v in config.items() if k in CONFIG_KEYS}


# --- Public API ---


def load_config(base_dir: Path) -> dict:
    """Load and merge global + project config.

    Returns a flat dict with only the keys actually set in config files.
    """
    global_path = global_config_dir() / "config.toml"
    global_config = _load_single(global_path, str(global_path))

    project_path = Path(base_dir).resolve() / "hearth.toml"
    project_config = _load_single(project_path, str(project_path))
    if project_config:
        _check_api_key_in_git(project_config, project_path)

    return {**global_config, **project_config}


def apply_config_to_args(args: argparse.Namespace, config: dict) -> None:
    """Apply config values to argparse namespace where CLI didn't set a value.

    Remaining _UNSET sentinels are replaced with hardcoded defaults.
    """

    def _is_unset(dest: str) -> bool:
        return getattr(args, dest, _UNSET) is _UNSET

    # A single config key controls the mutually exclusive color pair
    if "color" in config:
        if _is_unset("color") and _is_unset("no_color"):
            args.color = config["color"]
            args.no_color = not config["color"]

    for key, value in config.items():
        if key == "color":
            continue
        if _is_unset(key):
            setattr(args, key, value)

    for dest, default in _ARGPARSE_DEFAULTS.items():
        if _is_unset(dest):
            setattr(args, dest, default)


@dataclass
class Credentials:
    provider: str
    model: str
    api_key: str
    base_url: str | None = None
    api_version: str | None = None


def resolve_credentials(
    *,
    provider: str | None = None,
    model: str | None = None,
    api_key: str | None = None,
    base_url: str | None = None,
    api_version: str | None = None,
    environ: dict | None = None,
) -> Credentials:
    """Pick the provider and credentials from explicit values and the environment.

    Without an explicit provider, AZURE_CLIENT_KEY selects Azure OpenAI and
    CLIENT_KEY (or an explicit key) selects OpenAI, in that order. Raises ConfigError when no
    usable credentials are found.
    """
    env = os.environ if environ is None else environ
    model = model or env.get("MODEL_ID") or DEFAULT_MODEL

    if provider is None:
        if env.get("AZURE_CLIENT_KEY"):
            provider = "azure"
        elif env.get("CLIENT_KEY") or api_key:
            provider = "openai"
        else:
            raise ConfigError(MISSING_CREDENTIALS_HELP)

    if provider == "azure":
        key = api_key or env.get("AZURE_CLIENT_KEY")
        endpoint = base_url or env.get("CLIENT_ENDPOINT")
        if not key:
            raise ConfigError("--api-key or AZURE_CLIENT_KEY env var required for azure provider")
        if not endpoint:
            raise ConfigError("--base-url or CLIENT_ENDPOINT env var required for azure provider")
        return Credentials(
            provider="azure",
            model=model,
            api_key=key,
            base_url=endpoint,
            api_version=api_version or env.get("AZURE_API_VERSION"),
        )
    if provider == "openai":
        key = api_key or env.get("CLIENT_KEY")
        if not key:
            raise ConfigError("--api-key or CLIENT_KEY env var required for openai provider")
        return Credentials(provider="openai", model=model, api_key=key, base_url=base_url)

    raise ConfigError(f"unknown provider {provider!r}")


def generate_config(project: bool = False) -> str:
    """Return a commented-out template config string."""
    lines = [
        "# hearth configuration file",
        f"# {'Project' if project else 'Global'} config: "
        f"{'./hearth.toml' if project else '~/.config/hearth/config.toml'}",
        "#",
        "# CLI flags override these values. Only uncomment what you need.",
        "",
        "# --- Provider / model ---",
        '# provider = "openai"            # "openai" | "azure"',
        '# model = "gpt-4o"',
        '# api_key = "sk-..."             # prefer CLIENT_KEY / AZURE_CLIENT_KEY',
        '# base_url = "https://..."       # Azure endpoint or OpenAI-compatible server',
        '# api_version = "2024-06-01"     # azure only',
        "",
        "# --- Generation parameters ---",
        "# temperature = 0.7",
        "",
        "# --- Agent behaviour ---",
        '# system_prompt = "You are a helpful assistant."',
        "# max_tool_rounds = 1",
        "",
        "# --- UI ---",
        "# color = true       # true = force color, false = force no-color, absent = auto",
        "# quiet = false",
        "# debug = false",
        "",
    ]
    return "\n".join(lines)
