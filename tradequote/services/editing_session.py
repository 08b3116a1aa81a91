"""
Redigeringssession för ett dokument.

Knyter ihop återställning, prisberäkning och de två skrivarna:

  open() -> RestorationResolver ger startdokumentet
  edit() -> mutation, nya summor, utkast (snabbt, lokalt) + synk (långsamt, fjärr)
  save() -> validera, spara synkront, bekräfta identitet, spara delbetalningar,
            rensa utkastet och stoppa synken
  cancel() -> rensa utkastet utan fjärrskrivning
"""
from __future__ import annotations

import datetime as dt
import sys
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TypeVar

from pydantic import ValidationError

from tradequote.core.defaults import QuoteDefaults
from tradequote.core.document import Customer, DocumentType, MaterialItem, Quote
from tradequote.core.pricing import PricingOptions, Totals, compute_totals, milestone_warnings
from tradequote.services.collaborators import (
    CustomerDirectory,
    QuoteStore,
    RequirementsAnalyzer,
    VoiceItemParser,
)
from tradequote.services.debounce import TimerFactory
from tradequote.services.draft_cache import (
    DEFAULT_DRAFT_DEBOUNCE_SECONDS,
    DraftAutosaver,
    DraftCache,
    DraftMode,
)
from tradequote.services.restoration import Restoration, RestorationResolver
from tradequote.services.sync_scheduler import DEFAULT_SYNC_DEBOUNCE_SECONDS, SyncScheduler

T = TypeVar("T")


@dataclass(frozen=True)
class Notice:
    """Meddelande till användaren när en extern tjänst misslyckats."""
    kind: str
    message: str


class SessionClosedError(RuntimeError):
    """Sessionen är redan sparad eller avbruten."""


class EditingSession:
    def __init__(
        self,
        store: QuoteStore,
        cache: DraftCache,
        defaults: QuoteDefaults,
        *,
        analyzer: Optional[RequirementsAnalyzer] = None,
        voice_parser: Optional[VoiceItemParser] = None,
        customers: Optional[CustomerDirectory] = None,
        pricing_options: Optional[PricingOptions] = None,
        draft_delay: float = DEFAULT_DRAFT_DEBOUNCE_SECONDS,
        sync_delay: float = DEFAULT_SYNC_DEBOUNCE_SECONDS,
        timer_factory: Optional[TimerFactory] = None,
        today: Optional[dt.date] = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.defaults = defaults
        self.analyzer = analyzer
        self.voice_parser = voice_parser
        self.customers = customers
        self.pricing_options = pricing_options or PricingOptions(
            enable_vat=defaults.enable_vat,
            enable_cis=defaults.enable_cis,
        )
        self.draft_delay = draft_delay
        self.sync_delay = sync_delay
        self.timer_factory = timer_factory
        self.today = today
        self.resolver = RestorationResolver(cache, store, today=today)

        self.notices: List[Notice] = []
        self.document: Optional[Quote] = None
        self.restoration: Optional[Restoration] = None
        self.autosaver: Optional[DraftAutosaver] = None
        self.scheduler: Optional[SyncScheduler] = None
        self.closed = False
        self._totals: Optional[Totals] = None

    # -------------------------------------------------------------
    #  Öppna
    # -------------------------------------------------------------
    def open(
        self,
        mode: DraftMode,
        *,
        document_id: Optional[str] = None,
        project_id: Optional[str] = None,
        doc_type: DocumentType = "estimate",
    ) -> Restoration:
        restoration = self.resolver.resolve(
            mode,
            self.defaults,
            document_id=document_id,
            project_id=project_id,
            doc_type=doc_type,
        )
        self._attach(restoration)
        return restoration

    def discard_recovered(self) -> Restoration:
        """Kastar ett återställt utkast för ett nytt dokument och börjar om."""
        restoration = self._require_open()
        if not restoration.offer_discard:
            return restoration
        self.scheduler.stop()
        self.autosaver.cancel()
        fresh = self.resolver.discard_recovered(restoration, self.defaults)
        self._attach(fresh)
        return fresh

    def _attach(self, restoration: Restoration) -> None:
        self.restoration = restoration
        self.document = restoration.document
        self.closed = False
        self._totals = None
        self.autosaver = DraftAutosaver(
            self.cache,
            restoration.key,
            self._current,
            delay=self.draft_delay,
            timer_factory=self.timer_factory,
        )
        self.scheduler = SyncScheduler(
            self.store,
            self._current,
            restoration.identity,
            delay=self.sync_delay,
            timer_factory=self.timer_factory,
        )

    def _current(self) -> Quote:
        return self.document

    def _require_open(self) -> Restoration:
        if self.restoration is None:
            raise SessionClosedError("Ingen session är öppnad")
        if self.closed:
            raise SessionClosedError("Sessionen är redan avslutad")
        return self.restoration

    # -------------------------------------------------------------
    #  Redigering
    # -------------------------------------------------------------
    def edit(self, fn: Callable[[Quote], T]) -> T:
        """
        Kör en mutation på dokumentet och schemalägger båda skrivarna.
        Fel från mutationen (t.ex. LastSectionError) propageras.
        """
        self._require_open()
        result = fn(self.document)
        self.document.touch()
        self._totals = None
        self.autosaver.schedule()
        self.scheduler.schedule()
        return result

    @property
    def totals(self) -> Totals:
        if self._totals is None:
            self._totals = compute_totals(self.document, self.pricing_options)
        return self._totals

    @property
    def warnings(self) -> List[str]:
        return milestone_warnings(self.document, self.totals)

    def change_type(self, new_type: DocumentType) -> None:
        self.edit(lambda d: d.change_type(new_type, self.defaults, today=self.today))

    def _notice(self, kind: str, message: str) -> None:
        print(f"[editing_session] {kind}: {message}", file=sys.stderr)
        self.notices.append(Notice(kind=kind, message=message))

    # -------------------------------------------------------------
    #  Externa tjänster
    # -------------------------------------------------------------
    def run_analysis(
        self,
        text: str,
        image: Optional[bytes] = None,
        section_id: Optional[str] = None,
    ) -> bool:
        """Lägger in kravanalysens förslag som AI-föreslagna rader. Allt eller inget."""
        self._require_open()
        if self.analyzer is None:
            self._notice("analysis", "Ingen kravanalys är konfigurerad")
            return False

        context: Dict[str, Any] = {"title": self.document.title, "type": self.document.type}
        try:
            result = self.analyzer.analyze_requirements(text, image=image, context=context)
        except Exception as e:
            self._notice("analysis", f"Analysen misslyckades: {e}")
            return False

        try:
            self.edit(lambda d: d.merge_proposals(
                section_id,
                items=result.material_items(),
                labour_items=result.labour_entries(),
                suggested_title=result.suggested_title,
                labour_hours=result.labour_hours_estimate,
            ))
        except (ValidationError, KeyError) as e:
            self._notice("analysis", f"Förslaget kunde inte läggas in: {e}")
            return False
        return True

    def add_voice_items(self, transcript: str, section_id: Optional[str] = None) -> List[MaterialItem]:
        self._require_open()
        if self.voice_parser is None:
            self._notice("voice", "Ingen rösttolkning är konfigurerad")
            return []

        try:
            items = self.voice_parser.parse_voice_items(transcript)
        except Exception as e:
            self._notice("voice", f"Rösttolkningen misslyckades: {e}")
            return []

        if not items:
            return []

        def _append(document: Quote) -> List[MaterialItem]:
            section = document.find_section(section_id) if section_id else document.sections[0]
            section.items.extend(items)
            return items

        try:
            return self.edit(_append)
        except KeyError as e:
            self._notice("voice", f"Okänd sektion: {e}")
            return []

    def add_customer(self, customer: Customer) -> Optional[Customer]:
        """Skapar kunden i kundregistret och kopplar den till dokumentet."""
        self._require_open()
        if self.customers is None:
            self._notice("customer", "Inget kundregister är konfigurerat")
            return None

        try:
            saved = self.customers.add_customer(customer)
        except Exception as e:
            self._notice("customer", f"Kunden kunde inte sparas: {e}")
            return None

        self.edit(lambda d: setattr(d, "customer_id", saved.id))
        return saved

    # -------------------------------------------------------------
    #  Spara / avbryt
    # -------------------------------------------------------------
    def save(self) -> Quote:
        """
        Explicit spara. Valideringsfel (QuoteValidationError) och fel från
        fjärrlagringen propageras; utkastet ligger då kvar.
        """
        restoration = self._require_open()
        self.document.validate_for_save()

        identity = self.scheduler.identity
        prepared = self.document.prepare_for_save(is_new=restoration.mode == "new")
        prepared.id = identity.value
        prepared.touch()

        with self.scheduler.explicit_write():
            saved = self.store.save_quote(prepared)
            confirmed = self.scheduler.confirm(saved.id)
            self.scheduler.stop()

        try:
            self.store.save_milestones_batch(confirmed.value, prepared.milestones)
        except Exception as e:
            self._notice("milestones", f"Delbetalningarna kunde inte sparas: {e}")

        self.document = prepared
        self._totals = None
        self.autosaver.discard()
        self.closed = True
        return saved

    def cancel(self) -> None:
        """Avbryt: utkastet rensas, ingen fjärrskrivning."""
        self._require_open()
        self.autosaver.discard()
        self.scheduler.stop()
        self.closed = True

    def on_visibility_hidden(self) -> None:
        if self.autosaver is not None and not self.closed:
            self.autosaver.flush()

    def on_unload(self) -> None:
        if self.autosaver is None or self.closed:
            return
        self.autosaver.flush()
        self.scheduler.stop()
