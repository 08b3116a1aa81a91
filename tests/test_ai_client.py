import json
from types import SimpleNamespace

import pytest

from tradequote.services.ai_client import AIClient


class StubCompletions:
    def __init__(self, content):
        self.content = content
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(content):
    completions = StubCompletions(content)
    stub = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return AIClient(client=stub, model="test-model"), completions


def test_analyze_requirements_parses_result():
    payload = {
        "suggested_title": "Byte av element",
        "labour_items": [{"description": "Demontering", "hours": 2}],
        "materials": [{"name": "Element", "quantity": 1, "unit": "pc", "unit_price": 120}],
        "labour_hours_estimate": 2,
    }
    client, completions = _client(json.dumps(payload))
    result = client.analyze_requirements("byt element", context={"title": "x"})

    assert result.suggested_title == "Byte av element"
    assert result.material_items()[0].is_ai_proposed
    assert result.labour_entries()[0].hours == 2
    call = completions.calls[0]
    assert call["model"] == "test-model"
    assert call["response_format"] == {"type": "json_object"}


def test_image_is_sent_as_data_url():
    client, completions = _client("{}")
    client.analyze_requirements("bild", image=b"\x89PNG")
    content = completions.calls[0]["messages"][1]["content"]
    assert content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")


def test_json_wrapped_in_text_is_recovered():
    client, _ = _client('Här är svaret: {"items": [{"name": "Rör", "quantity": 3}]} tack')
    items = client.parse_voice_items("tre rör")
    assert [(i.name, i.quantity, i.is_ai_proposed) for i in items] == [("Rör", 3, False)]


def test_invalid_voice_rows_are_skipped(capsys):
    client, _ = _client(json.dumps({"items": [{"quantity": 2}, {"name": "Dosa"}]}))
    assert [i.name for i in client.parse_voice_items("x")] == ["Dosa"]
    assert "[ai_client]" in capsys.readouterr().err


def test_garbage_raises_runtime_error():
    client, _ = _client("inget json alls")
    with pytest.raises(RuntimeError):
        client.parse_voice_items("x")


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(RuntimeError):
        AIClient()
