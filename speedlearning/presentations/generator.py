from __future__ import annotations

"""
Learning-content generation with strict output validation.

Design intent:
- One model call per request; no retry and no repair heuristics.
- Fail closed: any model error, empty reply, unparsable JSON or missing field
  becomes a single GenerationFailure and no partial payload escapes.
"""

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from speedlearning.internal_core.contracts import GeneratedContent
from speedlearning.internal_core.errors import GenerationFailure, ValidationFailure
from speedlearning.presentations.llm_backends import TextGenerator
from speedlearning.presentations.prompts import build_learning_prompt
from speedlearning.presentations.sanitizer import sanitize_generated_output

logger = logging.getLogger(__name__)


def generate_learning_content(
    title: str,
    content: str,
    *,
    generate: TextGenerator,
    debug_log_path: str | None = None,
) -> GeneratedContent:
    if not str(title or "").strip():
        raise ValidationFailure("title is required")

    prompt = build_learning_prompt(title, content)
    started = time.perf_counter()
    _append_debug_log(
        debug_log_path,
        stage="generation_start",
        raw=prompt,
        metadata={"title": title, "content_chars": len(content or "")},
    )

    def finish(status: str, raw: str, metadata: dict[str, Any] | None = None) -> None:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        _append_debug_log(
            debug_log_path,
            stage="generation_end",
            raw=raw,
            metadata={"status": status, "elapsed_ms": elapsed_ms, **(metadata or {})},
        )

    try:
        raw = generate(prompt)
    except GenerationFailure as exc:
        finish("model_error", str(exc))
        raise
    except Exception as exc:
        finish("model_error", str(exc), {"error_type": type(exc).__name__})
        raise GenerationFailure(f"Failed to generate content: {exc}") from exc

    raw = str(raw or "")
    _append_debug_log(debug_log_path, stage="generation_raw_output", raw=raw)
    if not raw.strip():
        finish("empty_output", "")
        raise GenerationFailure("Failed to generate content: model returned an empty response")

    try:
        result = sanitize_generated_output(raw)
    except GenerationFailure as exc:
        _append_debug_log(debug_log_path, stage="parse_error_invalid_json", raw=str(exc))
        finish("invalid_output", str(exc))
        logger.warning("Rejected model output for %r: %s", title, exc)
        raise

    finish(
        "ok",
        "See stage=generation_raw_output for the model reply.",
        {"associations": len(result.associations)},
    )
    return result


def _append_debug_log(path: str | None, *, stage: str, raw: str, metadata: dict[str, Any] | None = None) -> None:
    if not path:
        return
    try:
        target = Path(path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).isoformat()
        meta = json.dumps(metadata or {}, ensure_ascii=True)
        payload = (
            f"[{stamp}] stage={stage} meta={meta}\n"
            "-----BEGIN LLM RAW-----\n"
            f"{raw}\n"
            "-----END LLM RAW-----\n"
        )
        with target.open("a", encoding="utf-8") as f:
            f.write(payload)
    except Exception:
        # Debug logging must never break generation.
        return
