from pathlib import Path

from pydantic import BaseModel
from dotenv import load_dotenv
import os

load_dotenv()

ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseModel):
    app_name: str = "TradeQuote - offerter och fakturor (v0)"
    environment: str = os.getenv("ENVIRONMENT", "dev")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./tradequote.db")
    debug: bool = os.getenv("DEBUG", "1") == "1"

    # Utkast
    drafts_dir: Path = Path(os.getenv("DRAFTS_DIR", str(ROOT / "knowledge" / "drafts")))
    draft_debounce_seconds: float = float(os.getenv("DRAFT_DEBOUNCE_SECONDS", "1.0"))
    draft_max_age_days: int = int(os.getenv("DRAFT_MAX_AGE_DAYS", "7"))

    # Fjärrsynk
    sync_debounce_seconds: float = float(os.getenv("SYNC_DEBOUNCE_SECONDS", "5.0"))

    # AI
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4.1-mini")


settings = Settings()
