import json
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from ..config import settings
from ..schemas.errors import SnapshotError
from ..schemas.filter import Record
from ..utils.logger import setup_logger

logger = setup_logger("snapshot_service", settings.logging.log_file("snapshot"))


class SnapshotService:
    """In-memory cache of record snapshots read from local files.

    An entry is reused while the file's mtime is unchanged and the entry is
    younger than the TTL, so edits made by the record source show up on the
    next query.
    """

    def __init__(self, data_dir: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self.data_dir = Path(data_dir or settings.snapshot.DATA_DIR)
        self.ttl_seconds = settings.snapshot.SNAPSHOT_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.supported_formats = set(settings.snapshot.SUPPORTED_FORMATS)
        self._entries: Dict[str, Tuple[float, float, List[Record]]] = {}
        self._lock = threading.Lock()
        self.stats = {"hits": 0, "misses": 0}

    def _resolve_path(self, file_path: str) -> Path:
        path = Path(file_path).expanduser()
        if not path.is_absolute() and not path.exists():
            candidate = self.data_dir / path
            if candidate.exists():
                path = candidate
        if not path.exists():
            raise SnapshotError(f"File not found: {file_path}", "file_not_found")
        if path.suffix.lower() not in self.supported_formats:
            raise SnapshotError(f"Unsupported file format: {path.suffix}", "unsupported_format")
        return path.resolve()

    def _read_frame(self, path: Path) -> pd.DataFrame:
        extension = path.suffix.lower()
        if extension == ".csv":
            return pd.read_csv(path, dtype=str, keep_default_na=False, na_values=[""])
        if extension == ".jsonl":
            return pd.read_json(path, lines=True, dtype=False, convert_dates=False)

        with open(path, "r", encoding="utf-8") as f:
            payload: Any = json.load(f)
        if isinstance(payload, dict):
            payload = payload.get("data", payload.get("leads"))
        if not isinstance(payload, list):
            raise SnapshotError(f"Expected a list of records in {path.name}", "invalid_content")
        return pd.DataFrame.from_records([row for row in payload if isinstance(row, dict)])

    def _to_records(self, df: pd.DataFrame) -> List[Record]:
        if df.empty:
            return []
        return df.astype(object).where(df.notna(), None).to_dict(orient="records")

    def load(self, file_path: str) -> List[Record]:
        """Return the records stored in a snapshot file"""
        path = self._resolve_path(file_path)
        key = str(path)
        mtime = path.stat().st_mtime

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                cached_mtime, loaded_at, records = entry
                fresh = time.monotonic() - loaded_at < self.ttl_seconds
                if cached_mtime == mtime and fresh:
                    self.stats["hits"] += 1
                    logger.debug(f"Using cached snapshot for {key}")
                    return records
            self.stats["misses"] += 1

        # Read without the lock; only publishing the entry is serialised
        logger.info(f"Loading snapshot from {key}")
        try:
            records = self._to_records(self._read_frame(path))
        except SnapshotError:
            raise
        except (ValueError, OSError) as e:
            logger.error(f"Error reading snapshot {key}: {str(e)}", exc_info=True)
            raise SnapshotError(f"Error reading {path.name}: {str(e)}", "invalid_content") from e

        with self._lock:
            self._entries[key] = (mtime, time.monotonic(), records)
        logger.info(f"Loaded {len(records)} records from {key}")
        return records

    def invalidate(self, file_path: Optional[str] = None) -> int:
        """Drop one cached snapshot, or all of them; returns entries removed"""
        with self._lock:
            if file_path is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            key = str(self._resolve_path(file_path))
            return 1 if self._entries.pop(key, None) is not None else 0
