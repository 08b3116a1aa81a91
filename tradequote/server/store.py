from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from tradequote.core.document import Customer, Milestone, Quote
from tradequote.core.pricing import compute_totals
from tradequote.server.models import CustomerRecord, MilestoneRecord, QuoteRecord


class SqlQuoteStore:
    """
    SQLModel-baserad fjärrlagring för dokument, delbetalningar och kunder.
    Dokumentet sparas som JSON; några fält dupliceras som kolumner för listning.
    Delbetalningar sparas separat och ingår inte i JSON-dokumentet.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # -------------------------------------------------------------
    #  Dokument
    # -------------------------------------------------------------
    def save_quote(self, document: Quote) -> Quote:
        """Upsert på dokumentets id."""
        payload = document.snapshot()
        payload.pop("milestones", None)

        with Session(self.engine) as session:
            record = session.get(QuoteRecord, document.id)
            if record is None:
                record = QuoteRecord(id=document.id)

            record.customer_id = document.customer_id or None
            record.project_id = document.project_id
            record.type = document.type
            record.status = document.status
            record.title = document.title
            record.grand_total = compute_totals(document).grand_total
            record.updated_at = document.updated_at
            record.payload = payload

            session.add(record)
            session.commit()

        return document.model_copy(deep=True)

    def get_quote(self, quote_id: str) -> Optional[Dict[str, Any]]:
        with Session(self.engine) as session:
            record = session.get(QuoteRecord, quote_id)
            if record is None:
                return None
            data = dict(record.payload or {})
            data.setdefault("id", record.id)
            return data

    def list_quotes(self, *, skip: int = 0, limit: int = 50) -> List[QuoteRecord]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(QuoteRecord).order_by(QuoteRecord.updated_at.desc()).offset(skip).limit(limit)
            ).all()
            return list(rows)

    # -------------------------------------------------------------
    #  Delbetalningar
    # -------------------------------------------------------------
    def get_milestones_for_document(self, quote_id: str) -> List[Milestone]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(MilestoneRecord)
                .where(MilestoneRecord.quote_id == quote_id)
                .order_by(MilestoneRecord.sort_order)
            ).all()
            return [
                Milestone(
                    id=r.id,
                    label=r.label,
                    percentage=r.percentage,
                    fixed_amount=r.fixed_amount,
                    due_date=r.due_date,
                    sort_order=r.sort_order,
                )
                for r in rows
            ]

    def save_milestones_batch(self, quote_id: str, milestones: List[Milestone]) -> None:
        """Ersätter dokumentets delbetalningar med den givna listan."""
        with Session(self.engine) as session:
            existing = session.exec(
                select(MilestoneRecord).where(MilestoneRecord.quote_id == quote_id)
            ).all()
            for row in existing:
                session.delete(row)
            session.flush()

            for idx, m in enumerate(milestones):
                session.add(MilestoneRecord(
                    id=m.id,
                    quote_id=quote_id,
                    label=m.label,
                    percentage=m.percentage,
                    fixed_amount=m.fixed_amount,
                    due_date=m.due_date,
                    sort_order=m.sort_order if m.sort_order else idx,
                ))
            session.commit()

    # -------------------------------------------------------------
    #  Kunder
    # -------------------------------------------------------------
    def add_customer(self, customer: Customer) -> Customer:
        with Session(self.engine) as session:
            record = session.get(CustomerRecord, customer.id)
            if record is None:
                record = CustomerRecord(id=customer.id, name=customer.name)
            record.name = customer.name
            record.email = customer.email or None
            record.phone = customer.phone or None
            record.address = customer.address or None
            record.company = customer.company or None
            session.add(record)
            session.commit()
        return customer.model_copy()

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        with Session(self.engine) as session:
            record = session.get(CustomerRecord, customer_id)
            if record is None:
                return None
            return Customer(
                id=record.id,
                name=record.name,
                email=record.email or "",
                phone=record.phone or "",
                address=record.address or "",
                company=record.company or "",
            )
