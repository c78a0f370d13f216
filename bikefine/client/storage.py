import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)


class LocalStorage:
    """String key/value store persisted to a JSON file.

    Values are stored as strings, the way a browser's localStorage keeps them;
    callers serialize their own JSON.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Discarding unreadable storage file %s", self.path)
            return {}

    def _write(self, items: Dict[str, str]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(items), encoding="utf-8")

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str):
        items = self._read()
        items[key] = value
        self._write(items)

    def remove_item(self, key: str):
        items = self._read()
        if items.pop(key, None) is not None:
            self._write(items)

    def clear(self):
        self._write({})
