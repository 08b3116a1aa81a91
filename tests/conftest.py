# tests/conftest.py
import datetime as dt
import os, sys
from typing import Any, Dict, List, Optional

import pytest

# lägg till projektroten (mappen som innehåller "tradequote") först i sys.path
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from tradequote.core.defaults import QuoteDefaults
from tradequote.core.document import Customer, Milestone, Quote
from tradequote.services.draft_cache import DraftCache, MemoryDraftStorage


class FakeTimer:
    def __init__(self, delay, fn):
        self.delay = delay
        self.fn = fn
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    @property
    def active(self):
        return self.started and not self.cancelled


class FakeTimers:
    """Timerfabrik för tester: inget körs förrän fire_all() anropas."""

    def __init__(self):
        self.created: List[FakeTimer] = []

    def __call__(self, delay, fn):
        timer = FakeTimer(delay, fn)
        self.created.append(timer)
        return timer

    @property
    def active(self) -> List[FakeTimer]:
        return [t for t in self.created if t.active]

    def fire_all(self, delay: Optional[float] = None) -> int:
        fired = 0
        for timer in list(self.active):
            if delay is not None and timer.delay != delay:
                continue
            timer.cancelled = True
            timer.fn()
            fired += 1
        return fired


class FakeClock:
    def __init__(self, now: Optional[dt.datetime] = None):
        self.now = now or dt.datetime(2025, 3, 1, 12, 0, tzinfo=dt.timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + dt.timedelta(**kwargs)


class InMemoryQuoteStore:
    """QuoteStore + CustomerDirectory i minnet, med valbara fel."""

    def __init__(self):
        self.quotes: Dict[str, Dict[str, Any]] = {}
        self.milestones: Dict[str, List[Milestone]] = {}
        self.customers: Dict[str, Customer] = {}
        self.saved: List[Quote] = []
        self.fail_next_save = 0
        self.fail_get = False
        self.fail_customers = False

    def save_quote(self, document: Quote) -> Quote:
        if self.fail_next_save:
            self.fail_next_save -= 1
            raise ConnectionError("nätverket nere")
        snapshot = document.snapshot()
        snapshot.pop("milestones", None)
        self.quotes[document.id] = snapshot
        self.saved.append(document.model_copy(deep=True))
        return document.model_copy(deep=True)

    def get_quote(self, quote_id: str):
        if self.fail_get:
            raise ConnectionError("nätverket nere")
        raw = self.quotes.get(quote_id)
        return dict(raw) if raw is not None else None

    def get_milestones_for_document(self, quote_id: str) -> List[Milestone]:
        return list(self.milestones.get(quote_id, []))

    def save_milestones_batch(self, quote_id: str, milestones: List[Milestone]) -> None:
        self.milestones[quote_id] = [m.model_copy() for m in milestones]

    def add_customer(self, customer: Customer) -> Customer:
        if self.fail_customers:
            raise ConnectionError("kundregistret svarar inte")
        self.customers[customer.id] = customer
        return customer


@pytest.fixture
def timers():
    return FakeTimers()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return DraftCache(MemoryDraftStorage(), clock=clock)


@pytest.fixture
def store():
    return InMemoryQuoteStore()


@pytest.fixture
def defaults():
    return QuoteDefaults(
        default_labour_rate=50.0,
        default_tax_rate=20.0,
        default_cis_rate=20.0,
        default_markup_percent=15.0,
        enable_vat=True,
        enable_cis=True,
        default_quote_notes="Offerten gäller i 30 dagar.",
        default_invoice_notes="Betalning inom 14 dagar.",
        invoice_due_days=14,
    )
