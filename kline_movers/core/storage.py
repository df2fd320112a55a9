"""Named JSON records on disk, replaced atomically on every save."""

import json
import os
from pathlib import Path
from typing import Any

from kline_movers.core.errors import StorageNotFoundError, StorageParseError, StorageWriteError


class JsonStorage:
    """Key-named JSON record store rooted at a single directory.

    A save writes the full document to a sibling temp file, fsyncs it and then
    renames it over the final path, so readers only ever observe the previous
    record or the new one.
    """

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)

    def path_for(self, name: str) -> Path:
        return self.base_dir / f"{name}.json"

    def save(self, name: str, data: Any) -> Path:
        final_path = self.path_for(name)
        tmp_path = final_path.with_name(final_path.name + ".tmp")

        try:
            payload = json.dumps(data, ensure_ascii=True, indent=2, allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise StorageWriteError(name, f"record is not serializable: {exc}") from exc

        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, final_path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise StorageWriteError(name, str(exc)) from exc

        return final_path

    def load(self, name: str) -> Any:
        path = self.path_for(name)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise StorageNotFoundError(name, f"no record at {path}") from exc
        except OSError as exc:
            raise StorageParseError(name, f"unreadable record at {path}: {exc}") from exc

        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            raise StorageParseError(name, f"invalid JSON at {path}: {exc}") from exc
