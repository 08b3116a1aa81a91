"""
Lokal utkastcache för dokument som redigeras.

Ett utkast är en JSON-ögonblicksbild av dokumentet plus `saved_at`.
Utkast äldre än max_age (7 dagar) räknas som saknade och rensas vid läsning.
Lagringsfel loggas och sväljs – cachen kastar aldrig till anroparen.
"""
from __future__ import annotations

import datetime as dt
import json
import re
import sys
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Literal, Optional, Protocol

from tradequote.core.document import Quote
from tradequote.services.debounce import Debouncer, TimerFactory

DraftMode = Literal["new", "edit"]

DEFAULT_MAX_AGE = dt.timedelta(days=7)
DEFAULT_DRAFT_DEBOUNCE_SECONDS = 1.0

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")

Clock = Callable[[], dt.datetime]


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def draft_key(mode: DraftMode, ref: Optional[str]) -> str:
    """
    Nya dokument delar nyckel per projekt (utan projekt: "none"),
    redigering använder dokumentets id. Namnrymderna krockar aldrig.
    """
    if mode == "new":
        return f"quote_draft_new_{ref or 'none'}"
    if not ref:
        raise ValueError("Redigeringsutkast kräver dokument-id")
    return f"quote_draft_edit_{ref}"


# ---------------------------------------------------------------------
# Lagring
# ---------------------------------------------------------------------

class DraftStorage(Protocol):
    def read(self, key: str) -> Optional[str]: ...

    def write(self, key: str, data: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryDraftStorage:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def read(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def write(self, key: str, data: str) -> None:
        with self._lock:
            self._data[key] = data

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self):
        with self._lock:
            return sorted(self._data)


class FileDraftStorage:
    """En JSON-fil per nyckel under `directory`."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, data: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(data, encoding="utf-8")
        tmp.replace(path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


# ---------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------

class DraftCache:
    def __init__(
        self,
        storage: Optional[DraftStorage] = None,
        *,
        max_age: dt.timedelta = DEFAULT_MAX_AGE,
        clock: Optional[Clock] = None,
    ) -> None:
        self.storage = storage if storage is not None else MemoryDraftStorage()
        self.max_age = max_age
        self._clock = clock or _utcnow

    def save(self, key: str, snapshot: Dict[str, Any]) -> None:
        entry = {"snapshot": snapshot, "saved_at": self._clock().isoformat()}
        try:
            self.storage.write(key, json.dumps(entry, ensure_ascii=False))
        except Exception as e:
            print(f"[draft_cache] Kunde inte spara utkast {key}: {e}", file=sys.stderr)

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = self.storage.read(key)
        except Exception as e:
            print(f"[draft_cache] Kunde inte läsa utkast {key}: {e}", file=sys.stderr)
            return None

        if raw is None:
            return None

        try:
            entry = json.loads(raw)
            snapshot = entry["snapshot"]
            saved_at = dt.datetime.fromisoformat(entry["saved_at"])
        except (ValueError, KeyError, TypeError) as e:
            print(f"[draft_cache] Trasigt utkast {key} rensas: {e}", file=sys.stderr)
            self.clear(key)
            return None

        if saved_at.tzinfo is None:
            saved_at = saved_at.replace(tzinfo=dt.timezone.utc)

        if self._clock() - saved_at > self.max_age:
            self.clear(key)
            return None

        if not isinstance(snapshot, dict):
            self.clear(key)
            return None
        return snapshot

    def clear(self, key: str) -> None:
        try:
            self.storage.delete(key)
        except Exception as e:
            print(f"[draft_cache] Kunde inte ta bort utkast {key}: {e}", file=sys.stderr)


# ---------------------------------------------------------------------
# Autosparning
# ---------------------------------------------------------------------

class DraftAutosaver:
    """
    Debouncad skrivare framför DraftCache.

    schedule() anropas vid varje ändring; efter `delay` sekunders tystnad
    sparas dokumentets aktuella ögonblicksbild. flush() sparar direkt
    (sidan göms / stängs), discard() avbryter och rensar utkastet.
    Ett dokument som tömts rensar utkastet i stället för att lämna det
    gamla innehållet kvar. Oförändrade ögonblicksbilder skrivs inte.
    """

    def __init__(
        self,
        cache: DraftCache,
        key: str,
        source: Callable[[], Quote],
        *,
        delay: float = DEFAULT_DRAFT_DEBOUNCE_SECONDS,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self.cache = cache
        self.key = key
        self._source = source
        self._last_written: Optional[Dict[str, Any]] = None
        self._discarded = False
        # Skrivning från timertråden och discard() körs aldrig samtidigt
        self._lock = threading.Lock()
        self._debouncer = Debouncer(delay, self._write, timer_factory=timer_factory)

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def schedule(self) -> None:
        with self._lock:
            self._discarded = False
        self._debouncer.trigger()

    def flush(self) -> bool:
        """Skriver väntande ändring direkt. False om inget väntade."""
        return self._debouncer.flush()

    def discard(self) -> None:
        self._debouncer.cancel()
        with self._lock:
            self._discarded = True
            self.cache.clear(self.key)
            self._last_written = None

    def cancel(self) -> None:
        self._debouncer.cancel()

    def _write(self) -> None:
        with self._lock:
            if self._discarded:
                return

            document = self._source()
            if document.is_empty():
                # Tomt dokument: inget värt att återställa
                self.cache.clear(self.key)
                self._last_written = None
                return

            snapshot = document.snapshot()
            if snapshot == self._last_written:
                return
            self.cache.save(self.key, snapshot)
            self._last_written = snapshot
