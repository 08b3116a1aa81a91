from typing import Any, Dict

from pydantic import BaseModel, Field


class QuoteDefaults(BaseModel):
    """
    Företagets standardvärden för nya dokument.
    Fylls normalt från knowledge/settings/quote_defaults.yaml (se services/quote_defaults.py).
    """
    default_labour_rate: float = 50.0
    default_tax_rate: float = 20.0
    default_cis_rate: float = 20.0
    default_markup_percent: float = 15.0
    enable_vat: bool = True
    enable_cis: bool = False
    default_quote_notes: str = ""
    default_invoice_notes: str = ""
    invoice_due_days: int = 14
    default_display_options: Dict[str, Any] = Field(default_factory=dict)

    def notes_for(self, document_type: str) -> str:
        if document_type == "invoice":
            return self.default_invoice_notes
        return self.default_quote_notes
