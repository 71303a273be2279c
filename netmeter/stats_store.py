"""JSON-file storage for per-day usage totals."""

import json
import logging
import os
from datetime import date, timedelta
from pathlib import Path
from threading import Lock
from typing import Optional

from pydantic import ValidationError

from netmeter.errors import PersistenceError
from netmeter.models import DailyStats
from netmeter.utils import day_key

logger = logging.getLogger(__name__)


class DailyStatsStore:
    """Day-keyed upload/download totals persisted after every mutation.

    The file holds a flat JSON array of day records. Load failures start
    with an empty history; save failures are logged and dropped, and the
    latest one is kept in ``last_error``.
    """

    def __init__(self, path: Path, autoload: bool = True):
        self.path = Path(path)
        self.last_error: Optional[PersistenceError] = None
        self._stats: dict[date, DailyStats] = {}
        self._lock = Lock()
        if autoload:
            self.load()

    def add_delta(self, day: date, uploaded: int, downloaded: int) -> DailyStats:
        """Add transferred bytes to a day, creating it if unseen."""
        day = day_key(day)
        with self._lock:
            stats = self._stats.get(day) or DailyStats(date=day)
            stats = stats.model_copy(update={
                'total_uploaded': stats.total_uploaded + max(uploaded, 0),
                'total_downloaded': stats.total_downloaded + max(downloaded, 0),
            })
            self._stats[day] = stats
            self._persist()
        return stats

    def record_peak(self, day: date, upload_speed: float, download_speed: float) -> DailyStats:
        """Keep the highest speeds seen for a day."""
        day = day_key(day)
        with self._lock:
            current = self._stats.get(day) or DailyStats(date=day)
            stats = current.model_copy(update={
                'peak_upload_speed': max(current.peak_upload_speed, upload_speed),
                'peak_download_speed': max(current.peak_download_speed, download_speed),
            })
            if day not in self._stats or stats != current:
                self._stats[day] = stats
                self._persist()
        return stats

    def get(self, day: date) -> DailyStats:
        """Stats for a day; a zero record when nothing was recorded."""
        day = day_key(day)
        with self._lock:
            return self._stats.get(day) or DailyStats(date=day)

    def today(self) -> DailyStats:
        return self.get(date.today())

    def last_n_days(self, n: int, today: Optional[date] = None) -> list[DailyStats]:
        """Exactly n records, newest first, zero-filled.

        Args:
            n: Number of days
            today: First day of the range, defaults to the current day

        Returns:
            List of DailyStats
        """
        today = day_key(today)
        with self._lock:
            result = []
            for offset in range(max(n, 0)):
                day = today - timedelta(days=offset)
                result.append(self._stats.get(day) or DailyStats(date=day))
            return result

    def all(self) -> list[DailyStats]:
        """Every stored day, oldest first."""
        with self._lock:
            return [self._stats[d] for d in sorted(self._stats)]

    def reset_all(self) -> None:
        """Delete the whole history."""
        with self._lock:
            self._stats.clear()
            self._persist()
        logger.info("Daily statistics reset")

    def load(self) -> None:
        """Read the history file; missing or broken files give an empty history."""
        with self._lock:
            try:
                self._stats = self._read()
                self.last_error = None
            except PersistenceError as e:
                logger.error(f"Failed to load statistics: {e}")
                self.last_error = e
                self._stats = {}

    def save(self) -> None:
        """Write the history file now."""
        with self._lock:
            self._persist()

    def _read(self) -> dict[date, DailyStats]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                records = json.load(f)
            if not isinstance(records, list):
                raise ValueError("expected a JSON array")
            stats = [DailyStats.model_validate(r) for r in records]
        except (OSError, ValueError, ValidationError) as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e

        logger.debug(f"Loaded {len(stats)} daily records from {self.path}")
        return {s.date: s for s in stats}

    def _write(self) -> None:
        records = [self._stats[d].model_dump(mode='json') for d in sorted(self._stats)]
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(records, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e

    def _persist(self) -> None:
        # Caller holds the lock
        try:
            self._write()
            self.last_error = None
        except PersistenceError as e:
            logger.error(f"Failed to save statistics: {e}")
            self.last_error = e
