from __future__ import annotations
import json
from pathlib import Path
from typing import Dict, Optional

from shared.log import get_logger

logger = get_logger(__name__)

DEFAULT_CREDENTIAL_KEY = "auth-token"


class CredentialStore:
    """Token store backed by a JSON file, read fresh on every lookup."""

    def __init__(self, base: Optional[Path] = None) -> None:
        self.base = base or (Path.home() / ".livelink" / "credentials.json")
        self._data: Dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        self._data = {}
        if not self.base.exists():
            return
        try:
            data = json.loads(self.base.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Unreadable credential store %s: %s", self.base, e)
            return
        if isinstance(data, dict):
            self._data = {k: v for k, v in data.items() if isinstance(v, str)}

    def save(self) -> None:
        self.base.parent.mkdir(parents=True, exist_ok=True)
        self.base.write_text(json.dumps(self._data, indent=2), encoding="utf-8")

    def get(self, key: str = DEFAULT_CREDENTIAL_KEY) -> Optional[str]:
        # Another process (e.g. `livelink login`) may have written since we started
        self._load()
        return self._data.get(key) or None

    def set(self, key: str, token: str) -> None:
        self._data[key] = token
        self.save()

    def remove(self, key: str) -> bool:
        self._load()
        if self._data.pop(key, None) is None:
            return False
        self.save()
        return True

    def all(self) -> Dict[str, str]:
        return dict(self._data)
