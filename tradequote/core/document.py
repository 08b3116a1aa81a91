"""
Dokumentmodellen för offerter/fakturor.

Quote -> Section -> MaterialItem / LabourItem, plus Milestone för delbetalningar.
Alla mutationer går via hjälpmetoderna här så att härledda värden
(t.ex. total_price på en materialrad) alltid är konsistenta direkt efter ändringen.
"""
import datetime as dt
import re
import uuid
from dataclasses import dataclass
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from tradequote.core.defaults import QuoteDefaults

DocumentType = Literal["estimate", "quotation", "invoice"]
QuoteStatus = Literal["draft", "sent", "accepted", "declined", "invoiced", "paid"]
AdjustmentType = Literal["percentage", "fixed"]

DEFAULT_SECTION_TITLE = "Work Section 1"
LABOUR_HOURS_STEP = 0.5


def new_id() -> str:
    """Klientgenererat id (stabilt under dokumentets livstid)."""
    return uuid.uuid4().hex[:12]


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _today() -> dt.date:
    return dt.date.today()


class LastSectionError(ValueError):
    """Försök att ta bort dokumentets sista sektion."""


class QuoteValidationError(ValueError):
    """
    Saknade obligatoriska fält vid explicit spara.
    Blockerar bara sparandet, aldrig redigering.
    """

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class _Model(BaseModel):
    model_config = ConfigDict(validate_assignment=True)


# ---------------------------------------------------------------------
# Rader
# ---------------------------------------------------------------------

class MaterialItem(_Model):
    id: str = Field(default_factory=new_id)
    name: str = ""
    description: str = ""
    quantity: float = Field(default=1.0, ge=0)
    unit: str = "pc"
    unit_price: float = 0.0
    is_ai_proposed: bool = False
    is_heading: bool = False

    # Härlett – räknas alltid om, lagras aldrig. Inkommande "total_price" ignoreras.
    @computed_field
    @property
    def total_price(self) -> float:
        return self.quantity * self.unit_price


class LabourItem(_Model):
    id: str = Field(default_factory=new_id)
    description: str = ""
    hours: float = Field(default=1.0, ge=0)
    rate: Optional[float] = None
    is_ai_proposed: bool = False


class HoursLabour(_Model):
    """Arbete som ett platt antal timmar på sektionen."""
    mode: Literal["hours"] = "hours"
    hours: float = Field(default=0.0, ge=0)


class ItemisedLabour(_Model):
    """Arbete som en lista med arbetsrader."""
    mode: Literal["items"] = "items"
    items: List[LabourItem] = Field(default_factory=list)


Labour = Annotated[Union[HoursLabour, ItemisedLabour], Field(discriminator="mode")]


class Milestone(_Model):
    id: str = Field(default_factory=new_id)
    label: str = ""
    percentage: Optional[float] = None
    fixed_amount: Optional[float] = None
    due_date: Optional[dt.date] = None
    sort_order: int = 0

    @model_validator(mode="after")
    def _one_amount_mode(self) -> "Milestone":
        if (self.percentage is None) == (self.fixed_amount is None):
            raise ValueError("En delbetalning ska ha antingen procent eller fast belopp")
        return self

    @property
    def is_percentage(self) -> bool:
        return self.percentage is not None

    def with_amount(
        self,
        *,
        percentage: Optional[float] = None,
        fixed_amount: Optional[float] = None,
    ) -> "Milestone":
        """
        Ny delbetalning med bytt belopp/läge. Båda fälten sätts i ett steg,
        så byte mellan procent och fast belopp valideras som helhet.
        """
        data = self.model_dump()
        data.update(percentage=percentage, fixed_amount=fixed_amount)
        return Milestone.model_validate(data)


class Discount(_Model):
    type: AdjustmentType = "percentage"
    value: float = 0.0
    description: str = ""


class PartPayment(_Model):
    type: AdjustmentType = "percentage"
    value: float = 0.0
    label: str = ""


class DisplayOptions(_Model):
    # Material
    show_materials: bool = True
    show_material_items: bool = True
    show_material_qty: bool = True
    show_material_unit_price: bool = True
    show_material_line_totals: bool = True
    show_material_section_total: bool = True

    # Arbete
    show_labour: bool = True
    show_labour_items: bool = True
    show_labour_qty: bool = True
    show_labour_unit_price: bool = True
    show_labour_line_totals: bool = True
    show_labour_section_total: bool = True

    # Allmänt & skatt
    show_vat: bool = True
    show_cis: bool = True
    show_notes: bool = True
    show_logo: bool = True
    show_totals_breakdown: bool = True


class Customer(_Model):
    id: str = Field(default_factory=new_id)
    name: str
    email: str = ""
    phone: str = ""
    address: str = ""
    company: str = ""


# ---------------------------------------------------------------------
# Sektion
# ---------------------------------------------------------------------

class Section(_Model):
    id: str = Field(default_factory=new_id)
    title: str = ""
    description: Optional[str] = None
    items: List[MaterialItem] = Field(default_factory=list)
    labour: Labour = Field(default_factory=HoursLabour)
    labour_rate: Optional[float] = None     # åsidosätter dokumentets timpris
    labour_cost: Optional[float] = None     # fast arbetskostnad, åsidosätter timmar × pris
    subsection_price: Optional[float] = None  # fast pris för hela sektionen

    @property
    def labour_items(self) -> List[LabourItem]:
        if isinstance(self.labour, ItemisedLabour):
            return self.labour.items
        return []

    @property
    def total_hours(self) -> float:
        if isinstance(self.labour, ItemisedLabour):
            return sum(i.hours for i in self.labour.items)
        return self.labour.hours

    # --- material ---

    def find_item(self, item_id: str) -> MaterialItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise KeyError(f"Okänd materialrad: {item_id}")

    def add_item(
        self,
        name: str = "",
        *,
        quantity: float = 1.0,
        unit: str = "pc",
        unit_price: float = 0.0,
        description: str = "",
        is_ai_proposed: bool = False,
    ) -> MaterialItem:
        item = MaterialItem(
            name=name,
            description=description,
            quantity=quantity,
            unit=unit,
            unit_price=unit_price,
            is_ai_proposed=is_ai_proposed,
        )
        self.items.append(item)
        return item

    def add_heading(self, name: str = "") -> MaterialItem:
        """Rubrikrad – avdelare utan pris som aldrig räknas in i summor."""
        item = MaterialItem(name=name, quantity=0, unit="", unit_price=0, is_heading=True)
        self.items.append(item)
        return item

    def update_item(self, item_id: str, **updates: Any) -> MaterialItem:
        """
        Uppdaterar fält på en materialrad. Hela raden valideras om, så
        total_price är alltid quantity × unit_price efteråt.
        """
        if "total_price" in updates:
            raise ValueError("total_price är härlett och kan inte sättas direkt")
        if "id" in updates:
            raise ValueError("Radens id kan inte ändras")

        current = self.find_item(item_id)
        data = current.model_dump(exclude={"total_price"})
        data.update(updates)
        updated = MaterialItem.model_validate(data)

        idx = self.items.index(current)
        self.items[idx] = updated
        return updated

    def remove_item(self, item_id: str) -> None:
        item = self.find_item(item_id)
        self.items.remove(item)

    def increment_quantity(self, item_id: str, step: float = 1.0) -> MaterialItem:
        item = self.find_item(item_id)
        return self.update_item(item_id, quantity=item.quantity + step)

    def decrement_quantity(self, item_id: str, step: float = 1.0) -> MaterialItem:
        item = self.find_item(item_id)
        return self.update_item(item_id, quantity=max(0.0, item.quantity - step))

    # --- arbete ---

    def set_labour_hours(self, hours: float) -> None:
        """Platta timmar. Ersätter ev. arbetsrader (endast en representation gäller)."""
        self.labour = HoursLabour(hours=hours)

    def find_labour_item(self, item_id: str) -> LabourItem:
        for item in self.labour_items:
            if item.id == item_id:
                return item
        raise KeyError(f"Okänd arbetsrad: {item_id}")

    def add_labour_item(
        self,
        description: str = "",
        *,
        hours: float = 1.0,
        rate: Optional[float] = None,
        is_ai_proposed: bool = False,
    ) -> LabourItem:
        item = LabourItem(description=description, hours=hours, rate=rate, is_ai_proposed=is_ai_proposed)
        if isinstance(self.labour, ItemisedLabour):
            self.labour.items.append(item)
        else:
            self.labour = ItemisedLabour(items=[item])
        return item

    def update_labour_item(self, item_id: str, **updates: Any) -> LabourItem:
        if "id" in updates:
            raise ValueError("Radens id kan inte ändras")
        current = self.find_labour_item(item_id)
        data = current.model_dump()
        data.update(updates)
        updated = LabourItem.model_validate(data)

        items = self.labour_items
        items[items.index(current)] = updated
        return updated

    def remove_labour_item(self, item_id: str) -> None:
        item = self.find_labour_item(item_id)
        self.labour_items.remove(item)
        if not self.labour_items:
            # Sista arbetsraden borta → tillbaka till platta timmar
            self.labour = HoursLabour(hours=0.0)

    def step_labour_hours(self, item_id: str, delta: float = LABOUR_HOURS_STEP) -> LabourItem:
        item = self.find_labour_item(item_id)
        return self.update_labour_item(item_id, hours=max(0.0, item.hours + delta))

    def copy_with_new_ids(self) -> "Section":
        clone = self.model_copy(deep=True)
        clone.id = new_id()
        for item in clone.items:
            item.id = new_id()
        for labour_item in clone.labour_items:
            labour_item.id = new_id()
        return clone


# ---------------------------------------------------------------------
# Dokument
# ---------------------------------------------------------------------

class Quote(_Model):
    id: str = Field(default_factory=new_id)
    customer_id: str = ""
    project_id: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=_utcnow)
    updated_at: dt.datetime = Field(default_factory=_utcnow)
    date: dt.date = Field(default_factory=_today)
    due_date: Optional[dt.date] = None
    title: str = ""
    sections: List[Section] = Field(
        default_factory=lambda: [Section(title=DEFAULT_SECTION_TITLE)],
        min_length=1,
    )
    labour_rate: float = 0.0
    markup_percent: float = 0.0
    tax_percent: float = 0.0
    cis_percent: float = 0.0
    discount: Optional[Discount] = None
    part_payment: Optional[PartPayment] = None
    notes: str = ""
    display_options: DisplayOptions = Field(default_factory=DisplayOptions)
    milestones: List[Milestone] = Field(default_factory=list)
    type: DocumentType = "estimate"
    status: QuoteStatus = "draft"
    job_address: Optional[str] = None
    reference_number: Optional[int] = None
    parent_quote_id: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "Quote":
        """Bygger ett dokument från lagrad/inkommande data, inkl. äldre format."""
        return cls.model_validate(migrate_legacy_shape(raw))

    def snapshot(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    def touch(self) -> None:
        self.updated_at = _utcnow()

    # --- sektioner ---

    def find_section(self, section_id: str) -> Section:
        for section in self.sections:
            if section.id == section_id:
                return section
        raise KeyError(f"Okänd sektion: {section_id}")

    def add_section(self, title: Optional[str] = None) -> Section:
        section = Section(title=title or f"Work Section {len(self.sections) + 1}")
        self.sections.append(section)
        return section

    def remove_section(self, section_id: str) -> None:
        section = self.find_section(section_id)
        if len(self.sections) == 1:
            raise LastSectionError("Dokumentet måste ha minst en sektion")
        self.sections.remove(section)

    def duplicate_section(self, section_id: str) -> Section:
        source = self.find_section(section_id)
        clone = source.copy_with_new_ids()
        clone.title = f"{source.title} (kopia)" if source.title else "Kopia"
        self.sections.insert(self.sections.index(source) + 1, clone)
        return clone

    def move_section(self, section_id: str, new_index: int) -> None:
        section = self.find_section(section_id)
        self.sections.remove(section)
        new_index = max(0, min(new_index, len(self.sections)))
        self.sections.insert(new_index, section)

    # --- delbetalningar ---

    def find_milestone(self, milestone_id: str) -> Milestone:
        for milestone in self.milestones:
            if milestone.id == milestone_id:
                return milestone
        raise KeyError(f"Okänd delbetalning: {milestone_id}")

    def set_milestone_amount(
        self,
        milestone_id: str,
        *,
        percentage: Optional[float] = None,
        fixed_amount: Optional[float] = None,
    ) -> Milestone:
        current = self.find_milestone(milestone_id)
        updated = current.with_amount(percentage=percentage, fixed_amount=fixed_amount)
        self.milestones[self.milestones.index(current)] = updated
        return updated

    # --- AI-föreslagna rader ---

    def remove_ai_proposed_items(self) -> int:
        """Tar bort alla AI-föreslagna material- och arbetsrader. Returnerar antal borttagna."""
        removed = 0
        for section in self.sections:
            kept = [i for i in section.items if not i.is_ai_proposed]
            removed += len(section.items) - len(kept)
            section.items[:] = kept

            if isinstance(section.labour, ItemisedLabour):
                kept_labour = [i for i in section.labour.items if not i.is_ai_proposed]
                removed += len(section.labour.items) - len(kept_labour)
                if kept_labour:
                    section.labour.items[:] = kept_labour
                else:
                    section.labour = HoursLabour(hours=0.0)
        return removed

    def merge_proposals(
        self,
        section_id: Optional[str] = None,
        *,
        items: Iterable[MaterialItem] = (),
        labour_items: Iterable[LabourItem] = (),
        suggested_title: Optional[str] = None,
        labour_hours: float = 0.0,
    ) -> Section:
        """
        Lägger in föreslagna rader i en sektion (default: första).

        Allt byggs på en kopia av sektionen och byts in först när allt gått
        igenom – antingen hela förslaget eller ingenting.
        """
        target = self.find_section(section_id) if section_id else self.sections[0]
        merged = target.model_copy(deep=True)

        for item in items:
            merged.items.append(item.model_copy(update={"is_ai_proposed": True}))

        new_labour = [i.model_copy(update={"is_ai_proposed": True}) for i in labour_items]
        if new_labour:
            if isinstance(merged.labour, HoursLabour):
                existing_hours = merged.labour.hours
                merged.labour = ItemisedLabour(items=[])
                if existing_hours > 0:
                    merged.labour.items.append(
                        LabourItem(description=merged.title or "Arbete", hours=existing_hours)
                    )
            merged.labour.items.extend(new_labour)
        elif labour_hours > 0:
            if isinstance(merged.labour, HoursLabour):
                merged.labour = HoursLabour(hours=merged.labour.hours + labour_hours)
            else:
                merged.labour.items.append(
                    LabourItem(description="Uppskattat arbete", hours=labour_hours, is_ai_proposed=True)
                )

        if suggested_title and merged.title in ("", DEFAULT_SECTION_TITLE):
            merged.title = suggested_title

        # Validera hela sektionen innan den byts in
        merged = Section.model_validate(merged.model_dump())
        self.sections[self.sections.index(target)] = merged
        return merged

    # --- typ / status ---

    def change_type(self, new_type: DocumentType, defaults: QuoteDefaults, today: Optional[dt.date] = None) -> None:
        """
        Byter dokumenttyp. Standardanteckningar följer med om användaren inte
        skrivit egna; en ny faktura får förfallodatum om det saknas.
        """
        default_notes = (defaults.default_quote_notes, defaults.default_invoice_notes)
        if not self.notes or self.notes in default_notes:
            self.notes = defaults.notes_for(new_type)

        if new_type == "invoice" and self.due_date is None:
            self.due_date = (today or self.date) + dt.timedelta(days=defaults.invoice_due_days)

        self.type = new_type

    def prepare_for_save(self, *, is_new: bool) -> "Quote":
        """Kopia redo att sparas. En ny faktura i utkastläge sparas som skickad."""
        doc = self.model_copy(deep=True)
        if is_new and doc.type == "invoice" and doc.status == "draft":
            doc.status = "sent"
        return doc

    def validate_for_save(self) -> None:
        errors: List[str] = []
        if not self.title.strip():
            errors.append("Titel saknas")
        if not self.customer_id:
            errors.append("Kund saknas")
        if errors:
            raise QuoteValidationError(errors)

    def is_empty(self) -> bool:
        """Tomt = ingen titel, ingen kund och inga ifyllda rader."""
        if self.title.strip() or self.customer_id:
            return False
        for section in self.sections:
            for item in section.items:
                if item.is_heading:
                    continue
                if item.name.strip() or item.unit_price:
                    return False
            if section.total_hours > 0 or section.labour_cost:
                return False
        return True


# ---------------------------------------------------------------------
# Identitet
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class DocumentIdentity:
    """
    Lokal identitet som befordras till bekräftad efter första lyckade
    fjärrskrivningen. Befordran är envägs: en bekräftad identitet ändras aldrig.
    """
    value: str
    confirmed: bool = False

    @classmethod
    def local(cls, value: Optional[str] = None) -> "DocumentIdentity":
        return cls(value=value or new_id(), confirmed=False)

    def confirm(self, remote_id: Optional[str] = None) -> "DocumentIdentity":
        if self.confirmed:
            return self
        return DocumentIdentity(value=remote_id or self.value, confirmed=True)


# ---------------------------------------------------------------------
# Migrering av äldre format
# ---------------------------------------------------------------------

_CAMEL_1 = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_2 = re.compile(r"([a-z0-9])([A-Z])")


def _snake(key: str) -> str:
    # "isAIProposed" -> "is_ai_proposed", "unitPrice" -> "unit_price"
    return _CAMEL_2.sub(r"\1_\2", _CAMEL_1.sub(r"\1_\2", key)).lower()


def _snake_keys(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {(_snake(k) if isinstance(k, str) else k): _snake_keys(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_snake_keys(v) for v in obj]
    return obj


def _migrate_section(raw: Dict[str, Any]) -> Dict[str, Any]:
    section = dict(raw)
    hours = section.pop("labour_hours", None)
    items = section.pop("labour_items", None)
    if "labour" not in section:
        if items:
            section["labour"] = {"mode": "items", "items": items}
        else:
            section["labour"] = {"mode": "hours", "hours": hours or 0}
    return section


def migrate_legacy_shape(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normaliserar äldre/inkommande dokumentformat till nuvarande schema:

      - camelCase-nycklar från appen -> snake_case
      - platta dokument (items + labour_hours utan sections) -> en sektion
      - labour_hours / labour_items per sektion -> labour-unionen
      - platta discount_* / part_payment_* -> objekt
      - tom sektionslista -> en tom standardsektion
    """
    data = _snake_keys(dict(raw))

    if not data.get("sections"):
        legacy_items = data.pop("items", None)
        legacy_hours = data.pop("labour_hours", None)
        if legacy_items is not None or legacy_hours is not None:
            data["sections"] = [{
                "id": "legacy-section",
                "title": data.get("title") or "Work Section",
                "items": legacy_items or [],
                "labour_hours": legacy_hours or 0,
            }]
        else:
            data["sections"] = [{"title": DEFAULT_SECTION_TITLE}]

    data["sections"] = [_migrate_section(s) for s in data["sections"]]

    if "discount" not in data and data.get("discount_value"):
        data["discount"] = {
            "type": data.get("discount_type") or "percentage",
            "value": data.get("discount_value"),
            "description": data.get("discount_description") or "",
        }

    if "part_payment" not in data and data.get("part_payment_enabled") and data.get("part_payment_value"):
        data["part_payment"] = {
            "type": data.get("part_payment_type") or "percentage",
            "value": data.get("part_payment_value"),
            "label": data.get("part_payment_label") or "",
        }

    for key in (
        "discount_type", "discount_value", "discount_description",
        "part_payment_enabled", "part_payment_type", "part_payment_value", "part_payment_label",
    ):
        data.pop(key, None)

    return data
