import os
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import totalrecall.settings as default_settings

log = logging.getLogger(__name__)

ENV_PREFIX = "TOTALRECALL_"


class MergedSettings:
    """
    A singleton-style settings object that merges default settings with environment overrides.

    This class provides a unified, attribute-based access point for all
    worker configuration. It follows a clear precedence:
    1. Base values from `settings.py`.
    2. Overrides from `.env` file (handled by `python-dotenv` in settings.py).
    3. Overrides from `TOTALRECALL_<NAME>` variables for settings in `MODIFIABLE_SETTINGS`.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        """
        Initializes the settings object by loading defaults and overrides.

        :param environ: The environment to read overrides from. Defaults to `os.environ`.
        """
        self._config: Dict[str, Any] = {}
        self._load_defaults()
        self._load_overrides(os.environ if environ is None else environ)

    def __getattr__(self, name: str) -> Any:
        """Allows attribute access to settings, raising an AttributeError if not found."""
        config = self.__dict__.get("_config", {})
        if name in config:
            return config[name]
        raise AttributeError(f"'{self.__class__.__name__}' object has no attribute '{name}'")

    def get(self, item: str, default: Any = None) -> Any:
        """Provides dictionary-like access to settings with a default value."""
        return self._config.get(item, default)

    def get_all_settings(self) -> Dict[str, Any]:
        """Returns the entire configuration dictionary."""
        return self._config

    @property
    def METRICS_FILE_PATH(self) -> Path:
        return Path(self._config["METRICS_DIR"]) / self._config["METRICS_FILENAME"]

    @property
    def LOCK_FILE_PATH(self) -> Path:
        return Path(self._config["LOCK_DIR"]) / self._config["LOCK_FILENAME"]

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings.py module as defaults."""
        for key in dir(default_settings):
            if key.isupper():
                self._config[key] = getattr(default_settings, key)

    def _load_overrides(self, environ: Mapping[str, str]) -> None:
        """
        Applies `TOTALRECALL_<NAME>` environment overrides.

        Only keys listed in `MODIFIABLE_SETTINGS` are honoured; each value is
        coerced to the type of its default.

        :param environ: The mapping to read override variables from.
        """
        modifiable = self._config["MODIFIABLE_SETTINGS"]
        for env_key, raw_value in environ.items():
            if not env_key.startswith(ENV_PREFIX):
                continue

            key = env_key[len(ENV_PREFIX):]
            if key not in modifiable:
                log.warning(f"Override '{env_key}' does not name a modifiable setting. Ignoring.")
                continue

            try:
                self._config[key] = self._coerce(self._config.get(key), raw_value)
                log.debug(f"Overridden setting: {key} = {self._config[key]}")
            except (ValueError, TypeError) as e:
                log.error(f"Could not convert value '{raw_value}' for key '{key}'. Error: {e}")

    @staticmethod
    def _coerce(original_value: Any, value: str) -> Any:
        """Coerces a raw override string to the type of the original value."""
        if isinstance(original_value, bool):
            return str(value).lower() in ('true', '1', 't', 'yes', 'y')
        if isinstance(original_value, Path):
            return Path(value)
        if original_value is not None:
            return type(original_value)(value)
        return value # Cannot determine type, accept as is


# Create a singleton instance to be imported by other modules
effective_settings = MergedSettings()
