from __future__ import annotations

import base64
import json
import os
import sys
from typing import Any, Dict, List, Optional

from openai import OpenAI
from pydantic import ValidationError

from tradequote.core.document import MaterialItem
from tradequote.services.collaborators import AnalysisResult, ProposedMaterial

MODEL_DEFAULT = "gpt-4.1-mini"

ANALYSIS_INSTRUCTION = (
    "Du är en kalkylator för hantverkare. Läs kundens beskrivning av jobbet och "
    "returnera JSON med nycklarna: suggested_title (str), labour_items "
    "(lista med description, hours), materials (lista med name, quantity, unit, "
    "unit_price) och labour_hours_estimate (tal). Timmar i steg om 0.5."
)

VOICE_INSTRUCTION = (
    "Du tolkar en dikterad materiallista. Returnera JSON med nyckeln items: "
    "en lista med name, quantity, unit och unit_price (0 om okänt)."
)


class AIClient:
    """
    OpenAI-baserad kravanalys och tolkning av dikterade materialrader.
    Implementerar RequirementsAnalyzer och VoiceItemParser.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Any = None,
    ) -> None:
        if client is None:
            api_key = api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise RuntimeError(
                    "Miljövariabeln OPENAI_API_KEY saknas. "
                    "Sätt den i .env eller i miljön."
                )
            client = OpenAI(api_key=api_key)

        self.client = client
        self.model = model or os.getenv("OPENAI_MODEL", MODEL_DEFAULT)

    def _safe_json_loads(self, raw: str, *, context: str) -> Dict[str, Any]:
        """
        Försöker parsa GPT-output som JSON. Misslyckas det klipps första '{'
        till sista '}' ut och provas igen innan ett begripligt fel höjs.
        """
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            start = raw.find("{")
            end = raw.rfind("}")
            if start != -1 and end > start:
                try:
                    return json.loads(raw[start:end + 1])
                except json.JSONDecodeError:
                    pass

        print(f"[ai_client] Ogiltig JSON för context='{context}': {raw[:200]!r}", file=sys.stderr)
        raise RuntimeError(f"Kunde inte tolka GPT-svar som JSON för context='{context}'.")

    def _complete(self, *, system: str, content: Any, context: str) -> Dict[str, Any]:
        response = self.client.chat.completions.create(
            model=self.model,
            temperature=0.0,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": content},
            ],
        )

        raw = response.choices[0].message.content or ""

        # Hantera både str och ev. list-format från klienten
        if isinstance(raw, list):
            parts = []
            for part in raw:
                if isinstance(part, dict) and "text" in part:
                    parts.append(str(part["text"]))
                else:
                    parts.append(str(part))
            raw = "".join(parts)

        return self._safe_json_loads(raw, context=context)

    # -------------------------------------------------------------
    #  KRAVANALYS
    # -------------------------------------------------------------
    def analyze_requirements(
        self,
        text: str,
        image: Optional[bytes] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> AnalysisResult:
        prompt = text
        if context:
            prompt += "\n\nKontext:\n" + json.dumps(context, ensure_ascii=False, indent=2)

        content: Any = prompt
        if image is not None:
            encoded = base64.b64encode(image).decode("ascii")
            content = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{encoded}"}},
            ]

        data = self._complete(system=ANALYSIS_INSTRUCTION, content=content, context="analysis")
        try:
            return AnalysisResult.model_validate(data)
        except ValidationError as e:
            raise RuntimeError(f"Kravanalysen gav ett oväntat format: {e}") from e

    # -------------------------------------------------------------
    #  DIKTERADE MATERIALRADER
    # -------------------------------------------------------------
    def parse_voice_items(self, transcript: str) -> List[MaterialItem]:
        data = self._complete(system=VOICE_INSTRUCTION, content=transcript, context="voice")

        items: List[MaterialItem] = []
        for raw_item in data.get("items") or []:
            try:
                proposed = ProposedMaterial.model_validate(raw_item)
            except ValidationError as e:
                print(f"[ai_client] Hoppar över ogiltig rad {raw_item!r}: {e}", file=sys.stderr)
                continue
            items.append(MaterialItem(
                name=proposed.name,
                quantity=proposed.quantity,
                unit=proposed.unit,
                unit_price=proposed.unit_price,
                description=proposed.description,
            ))
        return items
