import datetime as dt
import sys
from typing import Optional

from sqlalchemy.engine import Engine

from tradequote.server.db.session import engine as default_engine
from tradequote.server.settings.config import settings
from tradequote.server.store import SqlQuoteStore
from tradequote.services.ai_client import AIClient
from tradequote.services.draft_cache import DraftCache, FileDraftStorage
from tradequote.services.editing_session import EditingSession
from tradequote.services.quote_defaults import load_quote_defaults


def make_draft_cache() -> DraftCache:
    return DraftCache(
        FileDraftStorage(settings.drafts_dir),
        max_age=dt.timedelta(days=settings.draft_max_age_days),
    )


def make_ai_client() -> Optional[AIClient]:
    if not settings.openai_api_key:
        print("[wiring] Ingen OPENAI_API_KEY – kravanalys och rösttolkning är avstängda.", file=sys.stderr)
        return None
    return AIClient(api_key=settings.openai_api_key, model=settings.openai_model)


def make_editing_session(engine: Optional[Engine] = None, *, with_ai: bool = True) -> EditingSession:
    """Redigeringssession med konfigurerad lagring, utkastkatalog och fördröjningar."""
    store = SqlQuoteStore(engine or default_engine)
    ai = make_ai_client() if with_ai else None
    return EditingSession(
        store,
        make_draft_cache(),
        load_quote_defaults(),
        analyzer=ai,
        voice_parser=ai,
        customers=store,
        draft_delay=settings.draft_debounce_seconds,
        sync_delay=settings.sync_debounce_seconds,
    )
