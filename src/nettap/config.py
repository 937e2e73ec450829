"""Configuration management for nettap.

Reads the [capture] table of nettap.toml and merges command-line overrides.

PUBLIC API:
  - CaptureConfig: Effective settings for one capture session
  - load_capture_config: Build a CaptureConfig from file and overrides
  - get_capture_config: Cached CaptureConfig for the current directory
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional
import logging
import tomllib

from nettap.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "nettap.toml"


@dataclass
class CaptureConfig:
    """Settings for one capture session.

    Marker lists feed the traffic classifier. All substring matches are
    case-sensitive.
    """

    url: str | None = None
    port: int = 9222
    output_dir: str = "./captured-requests"
    launch: bool = True
    headless: bool = False
    devtools: bool = True
    window_size: str = "1920,1080"
    click_text_limit: int = 50
    billing_markers: list[str] = field(default_factory=lambda: ["Billing", "Tariff"])
    ajax_markers: list[str] = field(default_factory=lambda: ["/ajax/", "controller.php"])
    api_markers: list[str] = field(default_factory=lambda: ["api/"])
    write_methods: list[str] = field(default_factory=lambda: ["POST"])
    asset_extensions: list[str] = field(default_factory=lambda: [".css", ".js", ".png", ".jpg"])
    highlight_modules: list[str] = field(default_factory=lambda: ["BillingTariff"])

    @property
    def output_path(self) -> Path:
        return Path(self.output_dir)

    def as_dict(self) -> dict[str, Any]:
        """Plain dict for the session summary."""
        return asdict(self)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "CaptureConfig":
        """Build from a [capture] table, checking value types.

        Unknown keys are logged and ignored.

        Raises:
            ConfigError: If a known key holds a value of the wrong type.
        """
        defaults = cls()
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}

        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            if value is None:
                continue

            expected = getattr(defaults, key)
            if isinstance(expected, list):
                if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                    raise ConfigError(f"{key} must be a list of strings")
            elif isinstance(expected, bool):
                if not isinstance(value, bool):
                    raise ConfigError(f"{key} must be true or false")
            elif isinstance(expected, int):
                if isinstance(value, bool) or not isinstance(value, int):
                    raise ConfigError(f"{key} must be an integer")
            elif not isinstance(value, str):
                raise ConfigError(f"{key} must be a string")

            values[key] = value

        config = cls(**values)
        config.write_methods = [m.upper() for m in config.write_methods]
        return config


def _find_config_file() -> Optional[Path]:
    """Find nettap.toml in current or parent directories."""
    current = Path.cwd()

    for parent in [current] + list(current.parents):
        config_file = parent / CONFIG_FILENAME
        if config_file.exists():
            return config_file

    return None


def _load_config(path: Optional[Path] = None) -> dict:
    """Load raw configuration from file."""
    if path is None:
        path = _find_config_file()

    if path is None or not path.exists():
        return {}

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid {path}: {e}") from e


def load_capture_config(path: Optional[Path] = None, **overrides: Any) -> CaptureConfig:
    """Build the effective capture configuration.

    Args:
        path: Explicit config file. Searched for when omitted.
        **overrides: Values that win over the file. None values are skipped.

    Returns:
        CaptureConfig with file values and overrides applied.

    Raises:
        ConfigError: On unreadable TOML or mistyped values.
    """
    data = _load_config(path)
    section = data.get("capture", {})
    if not isinstance(section, dict):
        raise ConfigError("[capture] must be a table")

    merged = dict(section)
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return CaptureConfig.from_mapping(merged)


# Global instance
_capture_config: Optional[CaptureConfig] = None


def get_capture_config() -> CaptureConfig:
    """Get or load the capture config for the current directory."""
    global _capture_config
    if _capture_config is None:
        _capture_config = load_capture_config()
    return _capture_config


__all__ = ["CaptureConfig", "load_capture_config", "get_capture_config"]
