import json
import logging
from pathlib import Path
from typing import Any, Optional

import shellguard.settings as default_settings

log = logging.getLogger(__name__)


def _coerce(default: Any, value: Any) -> Any:
    """Brings an override into the shape of the default it replaces."""
    if isinstance(default, list) and isinstance(value, str):
        # Signal lists may be written as "TERM INT" or "TERM, INT".
        return value.replace(",", " ").split()
    if isinstance(default, (int, float)) and not isinstance(default, bool):
        return type(default)(value)
    return value


class MergedSettings:
    """
    The settings shellguard runs with: the defaults of `settings.py` (which
    already include `.env` and environment values), with the keys named in
    `MODIFIABLE_SETTINGS` optionally replaced from an overrides JSON file.
    """

    def __init__(self, overrides_path: Optional[Path] = None) -> None:
        self.OVERRIDES_JSON_PATH = Path(overrides_path or default_settings.OVERRIDES_JSON_PATH)

        for key in dir(default_settings):
            if key.isupper() and key != "OVERRIDES_JSON_PATH":
                setattr(self, key, getattr(default_settings, key))
        self._apply_overrides()

    def _apply_overrides(self) -> None:
        path = self.OVERRIDES_JSON_PATH
        if not path.exists():
            return

        try:
            overrides = json.loads(path.read_text())
            log.debug(f"Applying setting overrides from {path}")
            for key, value in overrides.items():
                if key not in self.MODIFIABLE_SETTINGS:
                    log.warning(f"Setting '{key}' cannot be overridden. Ignoring.")
                    continue
                setattr(self, key, _coerce(getattr(self, key), value))
                log.debug(f"Overridden setting: {key} = {getattr(self, key)}")
        except (json.JSONDecodeError, OSError, AttributeError, TypeError, ValueError) as e:
            log.error(f"Could not apply overrides file '{path}': {e}")


effective_settings = MergedSettings()
