"""
Kontrakt mot externa tjänster som kärnan använder men inte implementerar.
Konkreta adaptrar: services/ai_client.py (OpenAI) och server/store.py (SQLModel).
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from tradequote.core.document import Customer, LabourItem, MaterialItem, Milestone, Quote


class ProposedMaterial(BaseModel):
    name: str
    quantity: float = Field(default=1.0, ge=0)
    unit: str = "pc"
    unit_price: float = 0.0
    description: str = ""


class ProposedLabour(BaseModel):
    description: str
    hours: float = Field(default=1.0, ge=0)
    rate: Optional[float] = None


class AnalysisResult(BaseModel):
    """Svar från kravanalysen: föreslagen titel, arbetsrader och material."""
    suggested_title: Optional[str] = None
    labour_items: List[ProposedLabour] = Field(default_factory=list)
    materials: List[ProposedMaterial] = Field(default_factory=list)
    labour_hours_estimate: float = Field(default=0.0, ge=0)

    def material_items(self) -> List[MaterialItem]:
        return [
            MaterialItem(
                name=m.name,
                description=m.description,
                quantity=m.quantity,
                unit=m.unit,
                unit_price=m.unit_price,
                is_ai_proposed=True,
            )
            for m in self.materials
        ]

    def labour_entries(self) -> List[LabourItem]:
        return [
            LabourItem(description=l.description, hours=l.hours, rate=l.rate, is_ai_proposed=True)
            for l in self.labour_items
        ]


class RequirementsAnalyzer(Protocol):
    def analyze_requirements(
        self,
        text: str,
        image: Optional[bytes] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> AnalysisResult: ...


class VoiceItemParser(Protocol):
    def parse_voice_items(self, transcript: str) -> List[MaterialItem]: ...


class CustomerDirectory(Protocol):
    def add_customer(self, customer: Customer) -> Customer: ...


class QuoteStore(Protocol):
    def save_quote(self, document: Quote) -> Quote: ...

    def get_quote(self, quote_id: str) -> Optional[Dict[str, Any]]: ...

    def get_milestones_for_document(self, quote_id: str) -> List[Milestone]: ...

    def save_milestones_batch(self, quote_id: str, milestones: List[Milestone]) -> None: ...
