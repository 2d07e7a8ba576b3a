import json

import pytest

from speedlearning.internal_core.errors import GenerationFailure, ValidationFailure
from speedlearning.presentations.generator import generate_learning_content
from speedlearning.presentations.prompts import REQUIRED_FIELDS, build_learning_prompt


def _model_reply(mermaid: str = "mindmap\n  root((Osmosis))\n    Membrana (semipermeable)") -> str:
    payload = {
        "shortSummary": "Resumen corto.",
        "extendedSummary": "## Seccion\n- Punto",
        "associations": [
            {"concept": "Soluto", "association": "Azucar en el te", "mnemonic": "S de sabor"},
            {"concept": "Solvente", "association": "El agua", "mnemonic": "Agua lo disuelve"},
        ],
        "mermaidMap": mermaid,
        "story": "Una gota de agua viajaba...",
    }
    return "```json\n" + json.dumps(payload, ensure_ascii=False) + "\n```"


class RecordingModel:
    def __init__(self, reply=None, error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


def test_build_learning_prompt_embeds_note_and_contract() -> None:
    prompt = build_learning_prompt("Osmosis", "El agua se mueve hacia donde hay mas soluto.")
    assert '"Osmosis"' in prompt
    assert "El agua se mueve hacia donde hay mas soluto." in prompt
    for field in REQUIRED_FIELDS:
        assert field in prompt
    assert "mindmap" in prompt


def test_generate_learning_content_parses_and_sanitizes() -> None:
    model = RecordingModel(reply=_model_reply())
    content = generate_learning_content("Osmosis", "a" * 60, generate=model)
    assert len(model.prompts) == 1
    assert content.short_summary == "Resumen corto."
    assert [a.concept for a in content.associations] == ["Soluto", "Solvente"]
    assert content.mermaid_map.split("\n") == [
        "mindmap",
        "  root((Osmosis))",
        "    Membrana semipermeable",
    ]


def test_generate_learning_content_wraps_model_errors_once() -> None:
    cause = RuntimeError("quota exceeded")
    model = RecordingModel(error=cause)
    with pytest.raises(GenerationFailure, match="quota exceeded") as excinfo:
        generate_learning_content("Osmosis", "a" * 60, generate=model)
    assert excinfo.value.__cause__ is cause
    assert len(model.prompts) == 1


@pytest.mark.parametrize("reply", ["", "   \n", None])
def test_generate_learning_content_rejects_empty_output(reply) -> None:
    with pytest.raises(GenerationFailure, match="empty"):
        generate_learning_content("Osmosis", "a" * 60, generate=RecordingModel(reply=reply))


def test_generate_learning_content_rejects_invalid_json_without_retry() -> None:
    model = RecordingModel(reply="```json\n{ not json }\n```")
    with pytest.raises(GenerationFailure):
        generate_learning_content("Osmosis", "a" * 60, generate=model)
    assert len(model.prompts) == 1


def test_generate_learning_content_rejects_missing_field() -> None:
    payload = json.loads(_model_reply().removeprefix("```json\n").removesuffix("\n```"))
    del payload["story"]
    with pytest.raises(GenerationFailure, match="story"):
        generate_learning_content("Osmosis", "a" * 60, generate=RecordingModel(reply=json.dumps(payload)))


def test_generate_learning_content_requires_title() -> None:
    model = RecordingModel(reply=_model_reply())
    with pytest.raises(ValidationFailure):
        generate_learning_content("  ", "a" * 60, generate=model)
    assert model.prompts == []


def test_generate_learning_content_writes_debug_log(tmp_path) -> None:
    log_path = tmp_path / "logs" / "llm.log"
    generate_learning_content("Osmosis", "a" * 60, generate=RecordingModel(reply=_model_reply()), debug_log_path=str(log_path))
    text = log_path.read_text(encoding="utf-8")
    assert "stage=generation_start" in text
    assert "stage=generation_raw_output" in text
    assert '"status": "ok"' in text
