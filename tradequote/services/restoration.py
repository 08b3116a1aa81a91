from __future__ import annotations

import datetime as dt
import sys
from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import ValidationError

from tradequote.core.defaults import QuoteDefaults
from tradequote.core.document import (
    DEFAULT_SECTION_TITLE,
    DisplayOptions,
    DocumentIdentity,
    DocumentType,
    Quote,
    Section,
)
from tradequote.services.collaborators import QuoteStore
from tradequote.services.draft_cache import DraftCache, DraftMode, draft_key

RestorationSource = Literal["recovered-draft", "existing-remote", "fresh-default"]


@dataclass
class Restoration:
    document: Quote
    source: RestorationSource
    mode: DraftMode
    key: str
    identity: DocumentIdentity

    @property
    def offer_discard(self) -> bool:
        # Bara ett återställt utkast för ett nytt dokument kan kastas
        return self.source == "recovered-draft" and self.mode == "new"


def fresh_document(
    defaults: QuoteDefaults,
    *,
    doc_type: DocumentType = "estimate",
    project_id: Optional[str] = None,
    today: Optional[dt.date] = None,
) -> Quote:
    """Nytt dokument med företagets standardvärden och en tom sektion."""
    issue_date = today or dt.date.today()
    due_date = None
    if doc_type == "invoice":
        due_date = issue_date + dt.timedelta(days=defaults.invoice_due_days)

    return Quote(
        type=doc_type,
        project_id=project_id,
        date=issue_date,
        due_date=due_date,
        sections=[Section(title=DEFAULT_SECTION_TITLE)],
        labour_rate=defaults.default_labour_rate,
        markup_percent=defaults.default_markup_percent,
        tax_percent=defaults.default_tax_rate if defaults.enable_vat else 0.0,
        cis_percent=defaults.default_cis_rate if defaults.enable_cis else 0.0,
        notes=defaults.notes_for(doc_type),
        display_options=DisplayOptions.model_validate(defaults.default_display_options),
    )


class RestorationResolver:
    """
    Avgör vilket dokument en redigeringsvy ska starta med:

      1) ett giltigt lokalt utkast
      2) dokumentet från fjärrlagringen (endast redigering)
      3) ett nytt dokument med standardvärden

    Redigering av ett id som fjärrlagringen saknar ger ett nytt dokument
    med samma id men obekräftad identitet.
    """

    def __init__(self, cache: DraftCache, store: QuoteStore, *, today: Optional[dt.date] = None) -> None:
        self.cache = cache
        self.store = store
        self._today = today

    def resolve(
        self,
        mode: DraftMode,
        defaults: QuoteDefaults,
        *,
        document_id: Optional[str] = None,
        project_id: Optional[str] = None,
        doc_type: DocumentType = "estimate",
    ) -> Restoration:
        key = draft_key(mode, document_id if mode == "edit" else project_id)

        draft = self._load_draft(key)
        if draft is not None:
            return Restoration(
                document=draft,
                source="recovered-draft",
                mode=mode,
                key=key,
                identity=self._identity_for(mode, document_id, draft),
            )

        if mode == "edit" and document_id:
            # Fel från fjärrlagringen propageras – anroparen visar laddningsfel
            raw = self.store.get_quote(document_id)
            if raw is not None:
                document = Quote.from_raw(raw)
                milestones = self.store.get_milestones_for_document(document_id)
                if milestones:
                    document.milestones = sorted(milestones, key=lambda m: m.sort_order)
                return Restoration(
                    document=document,
                    source="existing-remote",
                    mode=mode,
                    key=key,
                    identity=DocumentIdentity(value=document_id, confirmed=True),
                )

        document = fresh_document(defaults, doc_type=doc_type, project_id=project_id, today=self._today)
        return Restoration(
            document=document,
            source="fresh-default",
            mode=mode,
            key=key,
            # Dokumentet finns inte i fjärrlagringen: id:t behålls men är obekräftat
            identity=self._identity_for(mode, document_id, document, confirmed=False),
        )

    def discard_recovered(self, restoration: Restoration, defaults: QuoteDefaults) -> Restoration:
        """Kastar det återställda utkastet och börjar om från standardvärden."""
        self.cache.clear(restoration.key)
        if restoration.mode == "edit":
            # Redigering: tillbaka till det sparade dokumentet
            return self.resolve("edit", defaults, document_id=restoration.identity.value)

        document = fresh_document(
            defaults,
            doc_type=restoration.document.type,
            project_id=restoration.document.project_id,
            today=self._today,
        )
        return Restoration(
            document=document,
            source="fresh-default",
            mode=restoration.mode,
            key=restoration.key,
            identity=DocumentIdentity.local(document.id),
        )

    def _load_draft(self, key: str) -> Optional[Quote]:
        snapshot = self.cache.load(key)
        if snapshot is None:
            return None
        try:
            return Quote.from_raw(snapshot)
        except ValidationError as e:
            print(f"[restoration] Ogiltigt utkast {key} rensas: {e}", file=sys.stderr)
            self.cache.clear(key)
            return None

    @staticmethod
    def _identity_for(
        mode: DraftMode,
        document_id: Optional[str],
        document: Quote,
        *,
        confirmed: bool = True,
    ) -> DocumentIdentity:
        if mode == "edit" and document_id:
            document.id = document_id
            return DocumentIdentity(value=document_id, confirmed=confirmed)
        return DocumentIdentity.local(document.id)
