from __future__ import annotations

import sys
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from tradequote.core.document import DocumentIdentity, Quote
from tradequote.services.collaborators import QuoteStore
from tradequote.services.debounce import Debouncer, TimerFactory

DEFAULT_SYNC_DEBOUNCE_SECONDS = 5.0


class SyncScheduler:
    """
    Debouncad skrivning av dokumentet till fjärrlagringen.

    - flera ändringar inom fönstret blir en skrivning med senaste läget
    - tomma dokument skrivs inte
    - första lyckade skrivningen bekräftar dokumentets identitet (envägs)
    - fel loggas och försöks igen först vid nästa ändrings cykel
    - fel når aldrig anroparen
    """

    def __init__(
        self,
        store: QuoteStore,
        source: Callable[[], Quote],
        identity: DocumentIdentity,
        *,
        delay: float = DEFAULT_SYNC_DEBOUNCE_SECONDS,
        timer_factory: Optional[TimerFactory] = None,
        on_confirmed: Optional[Callable[[DocumentIdentity], None]] = None,
    ) -> None:
        self.store = store
        self._source = source
        self._identity = identity
        self._on_confirmed = on_confirmed
        self._lock = threading.Lock()
        # Bakgrundsskrivning och explicit spara skriver aldrig samtidigt
        self._write_lock = threading.Lock()
        self._stopped = False
        self.last_error: Optional[Exception] = None
        self.write_count = 0
        self._debouncer = Debouncer(delay, self._sync, timer_factory=timer_factory)

    @property
    def identity(self) -> DocumentIdentity:
        with self._lock:
            return self._identity

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    @property
    def stopped(self) -> bool:
        with self._lock:
            return self._stopped

    def schedule(self) -> None:
        if self.stopped:
            return
        self._debouncer.trigger()

    def flush_now(self) -> bool:
        """Kör väntande skrivning direkt. False om inget väntade."""
        return self._debouncer.flush()

    def stop(self) -> None:
        """Avbryter väntande skrivning. En skrivning som redan pågår får gå klart."""
        with self._lock:
            self._stopped = True
        self._debouncer.cancel()

    def confirm(self, remote_id: Optional[str] = None) -> DocumentIdentity:
        """Bekräftar identiteten utanför schemat (t.ex. efter explicit spara)."""
        with self._lock:
            before = self._identity
            self._identity = before.confirm(remote_id)
            identity = self._identity
        if identity is not before and self._on_confirmed is not None:
            self._on_confirmed(identity)
        return identity

    @contextmanager
    def explicit_write(self) -> Iterator[None]:
        """
        Ger ensamrätt till fjärrlagringen för ett explicit spara.

        Väntande synk avbryts och en synk som redan pågår får skriva klart
        innan blocket körs. Anropa stop() inne i blocket när det lyckats, så
        att en bakgrundsskrivning som väntar på låset inte skriver över.
        """
        self._debouncer.cancel()
        with self._write_lock:
            yield

    def _sync(self) -> None:
        with self._write_lock:
            # Kontrolleras under låset: ett explicit spara kan ha stoppat oss
            if self.stopped:
                return

            document = self._source()
            if document.is_empty():
                return

            identity = self.identity
            payload = document.model_copy(deep=True)
            payload.id = identity.value

            try:
                saved = self.store.save_quote(payload)
            except Exception as e:
                self.last_error = e
                print(f"[sync_scheduler] Synk av {identity.value} misslyckades: {e}", file=sys.stderr)
                return

            self.last_error = None
            self.write_count += 1
            if not identity.confirmed:
                self.confirm(getattr(saved, "id", None) or identity.value)
