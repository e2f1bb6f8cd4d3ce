"""Single-file JSON document storage with atomic replace."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from luna_bot.log import get_logger

logger = get_logger(__name__)


class JsonDocument:
    """One JSON object on disk.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace`` so readers never observe a half-written file.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> dict[str, Any]:
        """Parse the document. Raises FileNotFoundError if it does not exist."""
        text = self._path.read_text(encoding="utf-8")
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object in {self._path}, got {type(data).__name__}")
        return data

    def write_text(self, text: str) -> None:
        """Atomically replace the document with already-serialized JSON."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    @staticmethod
    def serialize(data: dict[str, Any]) -> str:
        return json.dumps(data, indent=2, ensure_ascii=False)
