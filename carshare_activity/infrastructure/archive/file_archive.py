"""JSON file archive sink for retention. One file per policy per cleanup run."""

import asyncio
import json
import time
import uuid
from pathlib import Path
from typing import Any, Dict, Optional


class FileArchiveSink:
    """
    Implements ArchiveSink. Files land in `directory`, or in the directory a policy names
    as its archive location. File names are unique per run, so earlier archives are never overwritten.
    """

    def __init__(self, directory: str) -> None:
        self._directory = Path(directory)

    def new_path(self, name: str, location: Optional[str] = None) -> Path:
        directory = Path(location) if location else self._directory
        return directory / f"activity_{name}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}.json"

    async def write(
        self,
        name: str,
        document: Dict[str, Any],
        location: Optional[str] = None,
    ) -> str:
        path = self.new_path(name, location)
        await asyncio.to_thread(self._write, path, document)
        return str(path)

    @staticmethod
    def _write(path: Path, document: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # "x": fail rather than replace an existing archive
        with path.open("x", encoding="utf-8") as fh:
            json.dump(document, fh, indent=2, default=str)
