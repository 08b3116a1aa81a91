import datetime as dt

import pytest

from tradequote.core.document import DEFAULT_SECTION_TITLE, Milestone, Quote
from tradequote.core.defaults import QuoteDefaults
from tradequote.services.draft_cache import draft_key
from tradequote.services.restoration import RestorationResolver, fresh_document

TODAY = dt.date(2025, 3, 1)


def test_fresh_defaults(cache, store, defaults):
    r = RestorationResolver(cache, store, today=TODAY).resolve("new", defaults, project_id="p1")
    doc = r.document
    assert r.source == "fresh-default"
    assert not r.offer_discard
    assert r.key == "quote_draft_new_p1"
    assert doc.project_id == "p1"
    assert doc.labour_rate == 50
    assert doc.tax_percent == 20
    assert doc.cis_percent == 20
    assert doc.markup_percent == 15
    assert doc.notes == defaults.default_quote_notes
    assert [s.title for s in doc.sections] == [DEFAULT_SECTION_TITLE]
    assert not r.identity.confirmed
    assert r.identity.value == doc.id


def test_fresh_invoice_gets_due_date_and_disabled_rates_are_zero():
    defaults = QuoteDefaults(enable_vat=False, enable_cis=False, invoice_due_days=30)
    doc = fresh_document(defaults, doc_type="invoice", today=TODAY)
    assert doc.due_date == dt.date(2025, 3, 31)
    assert doc.tax_percent == 0
    assert doc.cis_percent == 0
    assert doc.notes == defaults.default_invoice_notes


def test_recovered_draft_for_new_document(cache, store, defaults):
    draft = Quote(title="Halvfärdig", project_id="p1")
    cache.save(draft_key("new", "p1"), draft.snapshot())

    r = RestorationResolver(cache, store).resolve("new", defaults, project_id="p1")
    assert r.source == "recovered-draft"
    assert r.offer_discard
    assert r.document.title == "Halvfärdig"
    assert r.identity.value == draft.id


def test_edit_mode_prefers_draft_over_remote(cache, store, defaults):
    remote = Quote(title="Sparad")
    store.save_quote(remote)
    cache.save(draft_key("edit", remote.id), Quote(title="Utkast").snapshot())

    r = RestorationResolver(cache, store).resolve("edit", defaults, document_id=remote.id)
    assert r.source == "recovered-draft"
    assert not r.offer_discard
    assert r.document.title == "Utkast"
    assert r.document.id == remote.id
    assert r.identity.confirmed


def test_edit_mode_loads_remote_with_milestones(cache, store, defaults):
    remote = Quote(title="Sparad")
    store.save_quote(remote)
    store.save_milestones_batch(remote.id, [
        Milestone(label="Slut", percentage=60, sort_order=1),
        Milestone(label="Start", percentage=40, sort_order=0),
    ])

    r = RestorationResolver(cache, store).resolve("edit", defaults, document_id=remote.id)
    assert r.source == "existing-remote"
    assert [m.label for m in r.document.milestones] == ["Start", "Slut"]
    assert r.identity.confirmed and r.identity.value == remote.id


def test_edit_mode_migrates_legacy_remote(cache, store, defaults):
    store.quotes["old"] = {"id": "old", "title": "Gammal", "items": [], "labour_hours": 4}
    r = RestorationResolver(cache, store).resolve("edit", defaults, document_id="old")
    assert r.document.sections[0].total_hours == 4


def test_edit_mode_remote_failure_propagates(cache, store, defaults):
    store.fail_get = True
    with pytest.raises(ConnectionError):
        RestorationResolver(cache, store).resolve("edit", defaults, document_id="x")


def test_invalid_draft_is_purged(cache, store, defaults):
    key = draft_key("new", None)
    cache.save(key, {"sections": [{"items": [{"quantity": -3}]}]})
    r = RestorationResolver(cache, store).resolve("new", defaults)
    assert r.source == "fresh-default"
    assert cache.load(key) is None


def test_discard_recovered(cache, store, defaults):
    key = draft_key("new", None)
    cache.save(key, Quote(title="Gammalt utkast").snapshot())
    resolver = RestorationResolver(cache, store)
    r = resolver.resolve("new", defaults)
    assert r.offer_discard

    fresh = resolver.discard_recovered(r, defaults)
    assert fresh.source == "fresh-default"
    assert fresh.document.title == ""
    assert cache.load(key) is None


def test_edit_mode_missing_remote_starts_unconfirmed(cache, store, defaults):
    r = RestorationResolver(cache, store, today=TODAY).resolve("edit", defaults, document_id="saknas")
    assert r.source == "fresh-default"
    assert r.document.id == "saknas"
    assert r.identity.value == "saknas"
    assert not r.identity.confirmed
    assert r.key == draft_key("edit", "saknas")


def test_edit_mode_draft_keeps_confirmed_identity(cache, store, defaults):
    cache.save(draft_key("edit", "q9"), Quote(title="Utkast").snapshot())
    r = RestorationResolver(cache, store).resolve("edit", defaults, document_id="q9")
    assert r.source == "recovered-draft"
    assert r.document.id == "q9"
    assert r.identity.confirmed
