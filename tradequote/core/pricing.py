"""
Prismotor för offerter/fakturor.

Ren funktion: compute_totals(document) -> Totals. Inga sidoeffekter, ingen I/O,
säker att anropa vid varje tangenttryckning.

Ordningen är fast och varje steg matar nästa:

  1. material per sektion (rubrikrader exkluderade)
  2. arbete per sektion (fast kostnad -> arbetsrader -> platta timmar)
  3. sektionspris (fast sektionspris om satt, annars material + arbete)
  4. raw_subtotal = summa sektionspriser; materials_total / labour_total = råa komponenter
  5. påslag: markup_amount, client_subtotal
  6. rabatt på client_subtotal, begränsad till [0, client_subtotal]
  7. moms på taxable_amount
  8. CIS = labour_total × cis% (bara arbete, före påslag/rabatt)
  9. grand_total = taxable + moms - CIS

Procentsatser multipliceras alltid – ingen division någonstans.
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from tradequote.core.document import (
    Discount,
    ItemisedLabour,
    LabourItem,
    Milestone,
    PartPayment,
    Quote,
    Section,
)

# Tolerans när delbetalningar jämförs mot 100 % / totalsumma
MILESTONE_TOLERANCE = 0.01


@dataclass
class PricingOptions:
    # Företagsinställningar
    enable_vat: bool = True
    enable_cis: bool = True
    # Om True nollas moms/CIS när dokumentets visningsval döljer dem
    respect_display_options: bool = False


@dataclass(frozen=True)
class SectionTotals:
    section_id: str
    materials: float
    labour: float
    labour_hours: float
    price: float
    overridden: bool


@dataclass(frozen=True)
class Totals:
    materials_total: float = 0.0
    labour_total: float = 0.0
    raw_subtotal: float = 0.0
    markup_amount: float = 0.0
    client_subtotal: float = 0.0
    discount_amount: float = 0.0
    taxable_amount: float = 0.0
    tax_amount: float = 0.0
    cis_amount: float = 0.0
    grand_total: float = 0.0
    part_payment_amount: float = 0.0
    balance_after_part_payment: float = 0.0
    section_totals: Tuple[SectionTotals, ...] = field(default_factory=tuple)
    milestone_amounts: Tuple[float, ...] = field(default_factory=tuple)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------
# Sektionsnivå
# ---------------------------------------------------------------------

def effective_labour_rate(section: Section, document_rate: float, item: Optional[LabourItem] = None) -> float:
    """Radens pris -> sektionens pris -> dokumentets pris."""
    if item is not None and item.rate is not None:
        return item.rate
    if section.labour_rate is not None:
        return section.labour_rate
    return document_rate or 0.0


def section_materials_cost(section: Section) -> float:
    return sum(item.total_price for item in section.items if not item.is_heading)


def section_labour_cost(section: Section, document_rate: float) -> float:
    """
    Exakt en väg används, i prioritetsordning:
      1) fast arbetskostnad (labour_cost)
      2) arbetsrader: timmar × effektivt pris per rad
      3) platta timmar × effektivt pris
    """
    if section.labour_cost is not None:
        return section.labour_cost

    if isinstance(section.labour, ItemisedLabour):
        return sum(
            item.hours * effective_labour_rate(section, document_rate, item)
            for item in section.labour.items
        )

    return section.labour.hours * effective_labour_rate(section, document_rate)


def section_price(section: Section, materials: float, labour: float) -> float:
    if section.subsection_price is not None:
        return section.subsection_price
    return materials + labour


# ---------------------------------------------------------------------
# Dokumentnivå
# ---------------------------------------------------------------------

def discount_amount(client_subtotal: float, discount: Optional[Discount]) -> float:
    """Rabatt efter påslag, före moms. Begränsas här så att inget senare steg blir negativt."""
    if discount is None or not discount.value:
        return 0.0

    if discount.type == "percentage":
        amount = client_subtotal * (discount.value / 100.0)
    else:
        amount = discount.value

    return max(0.0, min(amount, client_subtotal))


def part_payment_amount(grand_total: float, part_payment: Optional[PartPayment]) -> float:
    if part_payment is None or not part_payment.value:
        return 0.0

    if part_payment.type == "percentage":
        amount = grand_total * (part_payment.value / 100.0)
    else:
        amount = part_payment.value

    return max(0.0, min(amount, max(grand_total, 0.0)))


def milestone_amount(milestone: Milestone, grand_total: float) -> float:
    if milestone.percentage is not None:
        return grand_total * (milestone.percentage / 100.0)
    return milestone.fixed_amount or 0.0


def compute_totals(document: Quote, options: Optional[PricingOptions] = None) -> Totals:
    opts = options or PricingOptions()

    materials_total = 0.0
    labour_total = 0.0
    raw_subtotal = 0.0
    per_section: List[SectionTotals] = []

    for section in document.sections or []:
        materials = section_materials_cost(section)
        labour = section_labour_cost(section, document.labour_rate)
        price = section_price(section, materials, labour)

        # Råa komponenter räknas även för sektioner med fast pris (CIS-underlaget)
        materials_total += materials
        labour_total += labour
        raw_subtotal += price

        per_section.append(SectionTotals(
            section_id=section.id,
            materials=materials,
            labour=labour,
            labour_hours=section.total_hours,
            price=price,
            overridden=section.subsection_price is not None,
        ))

    markup_amount = raw_subtotal * ((document.markup_percent or 0.0) / 100.0)
    client_subtotal = raw_subtotal + markup_amount

    discount = discount_amount(client_subtotal, document.discount)
    taxable_amount = client_subtotal - discount

    vat_on = opts.enable_vat
    cis_on = opts.enable_cis
    if opts.respect_display_options:
        vat_on = vat_on and document.display_options.show_vat
        cis_on = cis_on and document.display_options.show_cis

    tax_amount = taxable_amount * ((document.tax_percent or 0.0) / 100.0) if vat_on else 0.0
    cis_amount = labour_total * ((document.cis_percent or 0.0) / 100.0) if cis_on else 0.0

    grand_total = taxable_amount + tax_amount - cis_amount

    part_payment = part_payment_amount(grand_total, document.part_payment)

    return Totals(
        materials_total=materials_total,
        labour_total=labour_total,
        raw_subtotal=raw_subtotal,
        markup_amount=markup_amount,
        client_subtotal=client_subtotal,
        discount_amount=discount,
        taxable_amount=taxable_amount,
        tax_amount=tax_amount,
        cis_amount=cis_amount,
        grand_total=grand_total,
        part_payment_amount=part_payment,
        balance_after_part_payment=grand_total - part_payment,
        section_totals=tuple(per_section),
        milestone_amounts=tuple(milestone_amount(m, grand_total) for m in document.milestones),
    )


def milestone_warnings(document: Quote, totals: Optional[Totals] = None) -> List[str]:
    """
    Mjuk kontroll av delbetalningar. Returnerar varningar att visa för
    användaren – blockerar aldrig sparande.
    """
    if not document.milestones:
        return []

    grand_total = (totals or compute_totals(document)).grand_total
    percent_sum = sum(m.percentage for m in document.milestones if m.percentage is not None)
    fixed_sum = sum(m.fixed_amount for m in document.milestones if m.fixed_amount is not None)
    has_percent = any(m.is_percentage for m in document.milestones)
    has_fixed = any(not m.is_percentage for m in document.milestones)

    warnings: List[str] = []
    if has_percent and not has_fixed:
        if abs(percent_sum - 100.0) > MILESTONE_TOLERANCE:
            warnings.append(f"Delbetalningarna summerar till {percent_sum:.2f} %, ska vara 100 %")
    elif has_fixed and not has_percent:
        if abs(fixed_sum - grand_total) > MILESTONE_TOLERANCE:
            warnings.append(
                f"Delbetalningarna summerar till {fixed_sum:.2f}, ska vara {grand_total:.2f}"
            )
    else:
        covered = grand_total * (percent_sum / 100.0) + fixed_sum
        if abs(covered - grand_total) > MILESTONE_TOLERANCE:
            warnings.append(
                f"Delbetalningarna täcker {covered:.2f} av {grand_total:.2f}"
            )
    return warnings
