from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import ValidationError

from tradequote.core.document import Customer, Milestone, Quote, QuoteValidationError
from tradequote.core.pricing import PricingOptions, compute_totals, milestone_warnings
from tradequote.server.db.session import engine
from tradequote.server.schemas.quote import QuoteListItem, QuoteOut, TotalsIn, TotalsOut
from tradequote.server.store import SqlQuoteStore


def get_store() -> SqlQuoteStore:
    return SqlQuoteStore(engine)


router = APIRouter(prefix="/quotes", tags=["quotes"])
customers_router = APIRouter(prefix="/customers", tags=["customers"])


# ==============================
# HELPERS
# ==============================

def _parse_document(raw: Dict[str, Any]) -> Quote:
    try:
        return Quote.from_raw(raw)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
        )


def _serialize_quote(document: Quote) -> QuoteOut:
    totals = compute_totals(document)
    return QuoteOut(
        document=document.snapshot(),
        totals=totals.as_dict(),
        warnings=milestone_warnings(document, totals),
    )


# ==============================
# BERÄKNING
# ==============================

@router.post("/totals", response_model=TotalsOut, summary="Beräkna summor för ett dokument")
def quote_totals(payload: TotalsIn):
    document = _parse_document(payload.document)
    options = PricingOptions(
        enable_vat=payload.enable_vat,
        enable_cis=payload.enable_cis,
        respect_display_options=payload.respect_display_options,
    )
    totals = compute_totals(document, options)
    return TotalsOut(totals=totals.as_dict(), warnings=milestone_warnings(document, totals))


# ==============================
# LISTA / HÄMTA / SPARA
# ==============================

@router.get("", response_model=List[QuoteListItem], summary="Lista dokument")
def list_quotes(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    store: SqlQuoteStore = Depends(get_store),
):
    return [
        QuoteListItem(
            id=r.id,
            title=r.title,
            type=r.type,
            status=r.status,
            customer_id=r.customer_id,
            grand_total=r.grand_total,
        )
        for r in store.list_quotes(skip=skip, limit=limit)
    ]


@router.get("/{quote_id}", response_model=QuoteOut, summary="Hämta dokument")
def get_quote(quote_id: str, store: SqlQuoteStore = Depends(get_store)):
    raw = store.get_quote(quote_id)
    if raw is None:
        raise HTTPException(status_code=404, detail="Quote not found")

    document = _parse_document(raw)
    document.milestones = store.get_milestones_for_document(quote_id)
    return _serialize_quote(document)


@router.put("/{quote_id}", response_model=QuoteOut, summary="Spara dokument")
def put_quote(
    quote_id: str,
    payload: Dict[str, Any] = Body(...),
    store: SqlQuoteStore = Depends(get_store),
):
    document = _parse_document({**payload, "id": quote_id})
    try:
        document.validate_for_save()
    except QuoteValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors)

    document.touch()
    saved = store.save_quote(document)
    store.save_milestones_batch(quote_id, document.milestones)
    return _serialize_quote(saved)


# ==============================
# DELBETALNINGAR
# ==============================

@router.get("/{quote_id}/milestones", response_model=List[Milestone], summary="Delbetalningar")
def get_milestones(quote_id: str, store: SqlQuoteStore = Depends(get_store)):
    if store.get_quote(quote_id) is None:
        raise HTTPException(status_code=404, detail="Quote not found")
    return store.get_milestones_for_document(quote_id)


@router.put("/{quote_id}/milestones", response_model=List[Milestone], summary="Ersätt delbetalningar")
def put_milestones(
    quote_id: str,
    milestones: List[Milestone],
    store: SqlQuoteStore = Depends(get_store),
):
    if store.get_quote(quote_id) is None:
        raise HTTPException(status_code=404, detail="Quote not found")
    store.save_milestones_batch(quote_id, milestones)
    return store.get_milestones_for_document(quote_id)


# ==============================
# KUNDER
# ==============================

@customers_router.post("", response_model=Customer, summary="Skapa kund")
def create_customer(customer: Customer, store: SqlQuoteStore = Depends(get_store)):
    return store.add_customer(customer)
