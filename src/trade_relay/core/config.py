"""Layered YAML settings for the trade relay.

Settings come from ``settings.yaml`` in the config directory, overlaid by
an optional ``settings.local.yaml``. String values of the form
``${NAME}`` or ``${NAME:default}`` are replaced from the environment after
the layers are merged; a ``.env`` file is read first when present.
"""

import os
import re
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import load_dotenv

_DEFAULT_CONFIG_DIR = Path(__file__).parent.parent / "config"
_SETTINGS_FILE = "settings.yaml"
_LOCAL_SETTINGS_FILE = "settings.local.yaml"

_WHOLE_REFERENCE = re.compile(r"^\$\{(?P<name>[^}:]+)(?::(?P<default>[^}]*))?\}$")
_ANY_REFERENCE = re.compile(r"\$\{[^}]+\}")


class ConfigError(Exception):
    """Raise when configuration loading or validation fails."""


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open() as f:
        data: Any = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"{path.name} must contain a mapping, got {type(data).__name__}"
        raise ConfigError(msg)
    return cast("dict[str, Any]", data)


def _merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` with ``overlay`` merged in, recursing into nested mappings."""
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _merge(cast("dict[str, Any]", current), cast("dict[str, Any]", value))
        else:
            merged[key] = value
    return merged


def _resolve(value: Any) -> Any:
    """Replace environment references in ``value`` and its children.

    Raises:
        ConfigError: If a referenced variable is unset and has no default,
            or a reference is embedded inside a longer string.

    """
    if isinstance(value, dict):
        items = cast("dict[str, Any]", value).items()
        return {key: _resolve(item) for key, item in items}
    if isinstance(value, list):
        return [_resolve(item) for item in cast("list[Any]", value)]
    if not isinstance(value, str):
        return value

    match = _WHOLE_REFERENCE.match(value)
    if match is not None:
        name = match.group("name")
        resolved = os.getenv(name, match.group("default"))
        if resolved is None:
            msg = f"Required environment variable ${{{name}}} is not set and has no default"
            raise ConfigError(msg)
        return resolved
    if _ANY_REFERENCE.search(value):
        msg = f"Unresolved environment variable reference in: {value}"
        raise ConfigError(msg)
    return value


class ConfigLoader:
    """Read the layered settings once and answer dotted-key lookups.

    Args:
        config_dir: Directory holding the settings files. Defaults to the
            ``config`` directory shipped inside the package.

    """

    def __init__(self, config_dir: Path | None = None) -> None:
        load_dotenv()
        self.config_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
        layered = _merge(
            _read_yaml(self.config_dir / _SETTINGS_FILE),
            _read_yaml(self.config_dir / _LOCAL_SETTINGS_FILE),
        )
        self._config: dict[str, Any] = _resolve(layered)

    def get(self, key: str, default: Any = None) -> Any:
        """Look up ``key`` in dot notation, e.g. ``"deriv.app_id"``.

        Return ``default`` when any part of the path is missing or null,
        or when the path descends into a scalar.
        """
        node: Any = self._config
        for part in key.split("."):
            if not isinstance(node, dict):
                return default
            node = cast("dict[str, Any]", node).get(part)
            if node is None:
                return default
        return node

    def get_section(self, name: str) -> dict[str, Any]:
        """Return the top-level section ``name``, empty when absent.

        Raises:
            ConfigError: If the section value is not a mapping.

        """
        section: Any = self.get(name, {})
        if not isinstance(section, dict):
            msg = f"{name} config must be a dict, got {type(section).__name__}"
            raise ConfigError(msg)
        return cast("dict[str, Any]", section)


_config: ConfigLoader | None = None


def get_config() -> ConfigLoader:
    """Return the process-wide ``ConfigLoader``, building it on first use."""
    global _config  # noqa: PLW0603
    if _config is None:
        _config = ConfigLoader()
    return _config
