from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CustomerRecord(SQLModel, table=True):
    __tablename__ = "customer"

    id: str = Field(primary_key=True)
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    company: Optional[str] = None


class QuoteRecord(SQLModel, table=True):
    __tablename__ = "quote"

    id: str = Field(primary_key=True)
    customer_id: Optional[str] = Field(default=None, index=True)
    project_id: Optional[str] = Field(default=None, index=True)
    type: str = "estimate"
    status: str = "draft"
    title: str = ""
    grand_total: float = 0.0
    updated_at: datetime = Field(default_factory=_utcnow)
    # Hela dokumentet (sektioner, rader, inställningar) som JSON
    payload: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))


class MilestoneRecord(SQLModel, table=True):
    __tablename__ = "milestone"

    id: str = Field(primary_key=True)
    quote_id: str = Field(foreign_key="quote.id", index=True)
    label: str = ""
    percentage: Optional[float] = None
    fixed_amount: Optional[float] = None
    due_date: Optional[date] = None
    sort_order: int = 0


__all_models = [CustomerRecord, QuoteRecord, MilestoneRecord]
