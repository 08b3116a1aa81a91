import datetime as dt

import pytest
from pydantic import ValidationError

from tradequote.core.defaults import QuoteDefaults
from tradequote.core.document import (
    DEFAULT_SECTION_TITLE,
    DocumentIdentity,
    HoursLabour,
    ItemisedLabour,
    LabourItem,
    LastSectionError,
    MaterialItem,
    Milestone,
    Quote,
    QuoteValidationError,
    migrate_legacy_shape,
)


def test_new_quote_has_one_default_section():
    q = Quote()
    assert len(q.sections) == 1
    assert q.sections[0].title == DEFAULT_SECTION_TITLE
    assert isinstance(q.sections[0].labour, HoursLabour)


def test_removing_last_section_is_rejected():
    q = Quote()
    with pytest.raises(LastSectionError):
        q.remove_section(q.sections[0].id)
    assert len(q.sections) == 1


def test_remove_section_when_more_than_one():
    q = Quote()
    second = q.add_section()
    assert second.title == "Work Section 2"
    q.remove_section(q.sections[0].id)
    assert [s.id for s in q.sections] == [second.id]


def test_unknown_section_raises_key_error():
    with pytest.raises(KeyError):
        Quote().find_section("nope")


def test_total_price_follows_quantity_and_unit_price():
    section = Quote().sections[0]
    item = section.add_item("Kabel", quantity=10, unit="m", unit_price=2.5)
    assert item.total_price == 25.0

    updated = section.update_item(item.id, quantity=4)
    assert updated.total_price == 10.0

    updated = section.increment_quantity(item.id)
    assert updated.quantity == 5
    assert updated.total_price == 12.5


def test_total_price_cannot_be_set():
    section = Quote().sections[0]
    item = section.add_item("Dosa", quantity=2, unit_price=3)
    with pytest.raises(ValueError):
        section.update_item(item.id, total_price=999)

    # Inkommande total_price ignoreras
    raw = MaterialItem.model_validate({"name": "x", "quantity": 2, "unit_price": 4, "total_price": 1})
    assert raw.total_price == 8


def test_decrement_quantity_floors_at_zero():
    section = Quote().sections[0]
    item = section.add_item("Skruv", quantity=0.5)
    assert section.decrement_quantity(item.id).quantity == 0


def test_negative_quantity_is_rejected():
    section = Quote().sections[0]
    item = section.add_item("Skruv")
    with pytest.raises(ValidationError):
        section.update_item(item.id, quantity=-1)
    assert section.find_item(item.id).quantity == 1


def test_heading_rows_total_zero():
    section = Quote().sections[0]
    heading = section.add_heading("Kök")
    assert heading.is_heading
    assert heading.total_price == 0


def test_add_labour_item_switches_to_items_mode_and_back():
    section = Quote().sections[0]
    section.set_labour_hours(3)
    item = section.add_labour_item("Dragning", hours=2)
    assert isinstance(section.labour, ItemisedLabour)
    assert section.total_hours == 2

    section.step_labour_hours(item.id)
    assert section.find_labour_item(item.id).hours == 2.5
    section.step_labour_hours(item.id, -5)
    assert section.find_labour_item(item.id).hours == 0

    section.remove_labour_item(item.id)
    assert section.labour == HoursLabour(hours=0)


def test_duplicate_section_gets_new_ids():
    q = Quote()
    src = q.sections[0]
    src.add_item("Rör", quantity=3, unit_price=10)
    src.add_labour_item("Montage", hours=1)

    clone = q.duplicate_section(src.id)
    assert q.sections[1] is clone
    assert clone.id != src.id
    assert clone.items[0].id != src.items[0].id
    assert clone.labour_items[0].id != src.labour_items[0].id
    assert clone.items[0].total_price == 30


def test_move_section():
    q = Quote()
    b = q.add_section("B")
    c = q.add_section("C")
    q.move_section(c.id, 0)
    assert [s.title for s in q.sections] == ["C", DEFAULT_SECTION_TITLE, "B"]
    q.move_section(c.id, 99)
    assert q.sections[-1].id == c.id
    assert b in q.sections


def test_merge_proposals_marks_rows_and_sets_title():
    q = Quote()
    q.sections[0].set_labour_hours(2)
    merged = q.merge_proposals(
        items=[MaterialItem(name="Uttag", quantity=4, unit_price=5)],
        labour_items=[LabourItem(description="Installation", hours=3)],
        suggested_title="Elinstallation kök",
    )
    assert merged.title == "Elinstallation kök"
    assert all(i.is_ai_proposed for i in merged.items)
    # Befintliga timmar blir en egen arbetsrad, inte AI-föreslagen
    assert [(i.hours, i.is_ai_proposed) for i in merged.labour_items] == [(2, False), (3, True)]


def test_merge_proposals_is_all_or_nothing():
    q = Quote()
    before = q.snapshot()
    bad = MaterialItem.model_construct(name="Trasig", quantity=-1, unit_price=1)
    with pytest.raises(ValidationError):
        q.merge_proposals(items=[MaterialItem(name="Bra"), bad])
    assert q.snapshot() == before


def test_remove_ai_proposed_items():
    q = Quote()
    q.merge_proposals(
        items=[MaterialItem(name="A"), MaterialItem(name="B")],
        labour_items=[LabourItem(description="X", hours=1)],
    )
    q.sections[0].add_item("Egen")
    assert q.remove_ai_proposed_items() == 3
    assert [i.name for i in q.sections[0].items] == ["Egen"]
    assert isinstance(q.sections[0].labour, HoursLabour)


def test_milestone_needs_exactly_one_amount():
    with pytest.raises(ValidationError):
        Milestone(label="Båda", percentage=50, fixed_amount=100)
    with pytest.raises(ValidationError):
        Milestone(label="Inget")
    assert Milestone(percentage=30).is_percentage


def test_change_type_swaps_default_notes_and_seeds_due_date():
    defaults = QuoteDefaults(default_quote_notes="Q", default_invoice_notes="I", invoice_due_days=14)
    q = Quote(notes="Q", date=dt.date(2025, 1, 1))
    q.change_type("invoice", defaults)
    assert q.type == "invoice"
    assert q.notes == "I"
    assert q.due_date == dt.date(2025, 1, 15)

    q.notes = "Egna villkor"
    q.change_type("quotation", defaults)
    assert q.notes == "Egna villkor"


def test_prepare_for_save_marks_new_invoice_sent():
    q = Quote(type="invoice")
    assert q.prepare_for_save(is_new=True).status == "sent"
    assert q.prepare_for_save(is_new=False).status == "draft"
    assert Quote(type="estimate").prepare_for_save(is_new=True).status == "draft"
    assert q.status == "draft"


def test_validate_for_save_lists_missing_fields():
    with pytest.raises(QuoteValidationError) as exc:
        Quote().validate_for_save()
    assert exc.value.errors == ["Titel saknas", "Kund saknas"]

    Quote(title="Badrum", customer_id="c1").validate_for_save()


def test_is_empty():
    q = Quote()
    assert q.is_empty()
    q.sections[0].add_heading("Rubrik")
    assert q.is_empty()
    q.sections[0].set_labour_hours(1)
    assert not q.is_empty()


def test_identity_promotion_is_one_way():
    local = DocumentIdentity.local("abc")
    assert not local.confirmed
    confirmed = local.confirm("remote-1")
    assert confirmed == DocumentIdentity("remote-1", True)
    assert confirmed.confirm("other") is confirmed


def test_migrate_flat_legacy_document():
    raw = {
        "title": "Gammal offert",
        "items": [{"name": "Kabel", "quantity": 2, "unitPrice": 10}],
        "labourHours": 3,
        "discountType": "fixed",
        "discountValue": 5,
    }
    q = Quote.from_raw(raw)
    assert len(q.sections) == 1
    section = q.sections[0]
    assert section.id == "legacy-section"
    assert section.title == "Gammal offert"
    assert section.items[0].unit_price == 10
    assert section.labour == HoursLabour(hours=3)
    assert q.discount.type == "fixed" and q.discount.value == 5


def test_migrate_section_labour_items_and_camel_case():
    raw = {
        "sections": [{
            "title": "S",
            "labourItems": [{"description": "A", "hours": 1.5, "isAIProposed": True}],
        }],
    }
    data = migrate_legacy_shape(raw)
    assert data["sections"][0]["labour"]["mode"] == "items"
    q = Quote.model_validate(data)
    assert q.sections[0].labour_items[0].is_ai_proposed


def test_migrate_empty_sections_gives_default_section():
    q = Quote.from_raw({"title": "x", "sections": []})
    assert [s.title for s in q.sections] == [DEFAULT_SECTION_TITLE]


def test_snapshot_round_trip_keeps_labour_union():
    q = Quote(title="T")
    q.sections[0].add_labour_item("A", hours=2, rate=60)
    again = Quote.from_raw(q.snapshot())
    assert again.sections[0].labour == q.sections[0].labour


def test_set_milestone_amount_switches_mode_in_one_step():
    q = Quote(milestones=[Milestone(label="Start", percentage=30)])
    mid = q.milestones[0].id

    updated = q.set_milestone_amount(mid, fixed_amount=500)
    assert not updated.is_percentage
    assert updated.percentage is None
    assert updated.fixed_amount == 500
    assert updated.id == mid and updated.label == "Start"
    assert q.find_milestone(mid) is updated

    q.set_milestone_amount(mid, percentage=40)
    assert q.milestones[0].is_percentage
    assert q.milestones[0].fixed_amount is None


def test_set_milestone_amount_rejects_invalid_combination():
    q = Quote(milestones=[Milestone(label="Start", percentage=30)])
    before = q.milestones[0]

    with pytest.raises(ValidationError):
        q.set_milestone_amount(before.id, percentage=30, fixed_amount=100)
    with pytest.raises(ValidationError):
        q.set_milestone_amount(before.id)
    assert q.milestones == [before]

    with pytest.raises(KeyError):
        q.set_milestone_amount("saknas", percentage=10)
