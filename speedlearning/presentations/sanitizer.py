from __future__ import annotations

"""
Cleaning passes for raw model output.

Pass A strips one outer markdown fence and parses the remainder as JSON.
Pass B rewrites mermaid mind-map node labels into the character subset the
mermaid mindmap parser accepts.
"""

import json
import re
import unicodedata
from typing import Any

from pydantic import ValidationError

from speedlearning.internal_core.contracts import GeneratedContent
from speedlearning.internal_core.errors import GenerationFailure

FENCE = "```"
PASSTHROUGH_LINES = 2

_LEADING_WS_RE = re.compile(r"^(\s*)(.*)$", flags=re.DOTALL)
_COMBINING_MARK_RE = re.compile("[\u0300-\u036f]")
_FORBIDDEN_LABEL_CHARS_RE = re.compile(r"""[()\[\]{}&|!#%@<>*"';=+^~`\\]""")
_WHITESPACE_RUN_RE = re.compile(r"\s+")
_INLINE_FENCE_TAG_RE = re.compile(r"^[A-Za-z0-9_+-]*(?=\s*[\[{])")
_FENCE_TAG_RE = re.compile(r"^[A-Za-z0-9_+-]*[ \t]*")


def strip_code_fence(raw: str) -> str:
    text = str(raw or "").strip()
    if not text.startswith(FENCE):
        return text

    newline = text.find("\n")
    if newline < 0:
        # Whole payload on the fence line: drop the marker and a tag glued to the JSON.
        body = _INLINE_FENCE_TAG_RE.sub("", text[len(FENCE) :])
    else:
        # Keep anything after the language tag on the opening line.
        opening = _FENCE_TAG_RE.sub("", text[len(FENCE) : newline], count=1)
        rest = text[newline + 1 :]
        body = f"{opening}\n{rest}" if opening.strip() else rest

    stripped_tail = body.rstrip()
    if stripped_tail.endswith(FENCE):
        body = stripped_tail[: -len(FENCE)]
    return body.strip()


def parse_json_payload(raw: str) -> dict[str, Any]:
    text = strip_code_fence(raw)
    if not text:
        raise GenerationFailure("Model returned an empty response")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise GenerationFailure(f"Model response is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise GenerationFailure(
            f"Model response must be a JSON object, got {type(data).__name__}"
        )
    return data


def validate_generated_payload(data: dict[str, Any]) -> GeneratedContent:
    try:
        return GeneratedContent.model_validate(data)
    except ValidationError as exc:
        problems = []
        for err in exc.errors():
            loc = ".".join(str(part) for part in err.get("loc", ()))
            problems.append(f"{loc or '<root>'}: {err.get('msg', 'invalid')}")
        raise GenerationFailure("Malformed model payload: " + "; ".join(problems)) from exc


def sanitize_mermaid_label(label: str) -> str:
    decomposed = unicodedata.normalize("NFD", label)
    cleaned = _COMBINING_MARK_RE.sub("", decomposed)
    cleaned = _FORBIDDEN_LABEL_CHARS_RE.sub("", cleaned)
    cleaned = _WHITESPACE_RUN_RE.sub(" ", cleaned)
    return cleaned.strip()


def sanitize_mermaid_map(raw: str) -> str:
    """
    Clean every node label after the declaration and root lines.

    Indentation encodes the mindmap depth and is kept byte for byte; line
    count and order never change.
    """
    lines = raw.split("\n")
    out: list[str] = []
    for index, line in enumerate(lines):
        if index < PASSTHROUGH_LINES:
            out.append(line)
            continue
        match = _LEADING_WS_RE.match(line)
        indent, label = match.group(1), match.group(2)
        out.append(indent + sanitize_mermaid_label(label))
    return "\n".join(out)


def sanitize_generated_output(raw: str) -> GeneratedContent:
    content = validate_generated_payload(parse_json_payload(raw))
    if content.mermaid_map:
        content = content.model_copy(update={"mermaid_map": sanitize_mermaid_map(content.mermaid_map)})
    return content
