from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class TotalsIn(BaseModel):
    """
    Payload till /quotes/totals.
    `document` är dokumentet i samma form som appen sparar (camelCase och
    äldre platta format accepteras).
    """
    document: Dict[str, Any]
    enable_vat: bool = True
    enable_cis: bool = True
    respect_display_options: bool = False


class TotalsOut(BaseModel):
    totals: Dict[str, Any]
    warnings: List[str] = Field(default_factory=list)


class QuoteOut(BaseModel):
    document: Dict[str, Any]
    totals: Dict[str, Any]
    warnings: List[str] = Field(default_factory=list)


class QuoteListItem(BaseModel):
    id: str
    title: str
    type: str
    status: str
    customer_id: Optional[str] = None
    grand_total: float = 0.0
