from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from tradequote.core.defaults import QuoteDefaults

# Projektrot (mappen som innehåller "tradequote")
ROOT = Path(__file__).resolve().parents[2]

# Här förväntar vi oss företagets standardvärden
QUOTE_DEFAULTS_PATH = ROOT / "knowledge" / "settings" / "quote_defaults.yaml"


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}

    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        # Trasig fil → bete oss som om den saknas
        print(f"[quote_defaults] Kunde inte läsa {path}: {e}", file=sys.stderr)
        return {}

    if not isinstance(data, dict):
        return {}
    # Tillåt både platt struktur och {"defaults": {...}}
    section = data.get("defaults", data)
    return section if isinstance(section, dict) else {}


def parse_quote_defaults(raw: Dict[str, Any]) -> QuoteDefaults:
    """
    Bygger QuoteDefaults från rå YAML-data. Ogiltiga värden ger
    inbyggda standardvärden i stället för ett fel.
    """
    try:
        return QuoteDefaults.model_validate(raw)
    except ValidationError as e:
        print(f"[quote_defaults] Ogiltiga standardvärden, använder inbyggda: {e}", file=sys.stderr)
        return QuoteDefaults()


@lru_cache(maxsize=1)
def _load_cached(path_str: str) -> QuoteDefaults:
    return parse_quote_defaults(_read_yaml(Path(path_str)))


def load_quote_defaults(path: Optional[Path] = None) -> QuoteDefaults:
    """Läser quote_defaults.yaml en gång och cache:ar resultatet."""
    return _load_cached(str(path or QUOTE_DEFAULTS_PATH))


def reload_quote_defaults() -> None:
    """Tömmer cachen, t.ex. efter att YAML-filen ändrats."""
    _load_cached.cache_clear()
