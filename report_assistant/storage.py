"""
Key/value persistence for tokens, profile and settings.

Two backends share the same get/set/remove contract: MemoryStore for tests
and the server, JsonFileStore for the CLI. Values are always strings.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from .config import THEME_KEY

logger = logging.getLogger(__name__)

THEMES = ('light', 'dark')


class MemoryStore:
    """In-process store."""

    def __init__(self, initial: Optional[dict] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStore(MemoryStore):
    """
    Store backed by a single JSON document on disk.

    Every write replaces the whole file atomically (temp file + os.replace),
    so a reader never sees a half-written document.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read state file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring state file {self.path}: not a JSON object")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix='.state-', suffix='.json')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def set(self, key: str, value: str) -> None:
        super().set(key, value)
        self._flush()

    def remove(self, key: str) -> None:
        if key in self._data:
            super().remove(key)
            self._flush()


# =============================================================================
# THEME PREFERENCE
# =============================================================================

def load_theme(store, default: str = 'light') -> str:
    theme = store.get(THEME_KEY)
    return theme if theme in THEMES else default


def save_theme(store, theme: str) -> None:
    if theme not in THEMES:
        raise ValueError(f"Unknown theme: {theme!r} (expected one of {', '.join(THEMES)})")
    store.set(THEME_KEY, theme)
