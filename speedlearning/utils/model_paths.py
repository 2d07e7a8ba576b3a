from __future__ import annotations

import os
from pathlib import Path


def project_root() -> Path:
    # speedlearning/utils/model_paths.py -> speedlearning -> project
    return Path(__file__).resolve().parents[2]


def model_search_roots() -> list[Path]:
    roots: list[Path] = []
    model_root = os.getenv("SPEEDLEARNING_MODEL_ROOT", "").strip()
    if model_root:
        roots.append(Path(model_root).expanduser())
    base = project_root()
    roots.extend([base, base / "models", base.parent, base.parent / "models"])
    # Keep order and uniqueness.
    out: list[Path] = []
    seen: set[str] = set()
    for item in roots:
        key = str(item)
        if key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out


def discover_llama_cpp_gguf() -> str:
    """Return the first ``*.gguf`` file found under the model roots, or ``""``."""
    for root in model_search_roots():
        try:
            if not root.is_dir():
                continue
            matches = sorted(root.glob("*.gguf"))
        except OSError:
            continue
        if matches:
            return str(matches[0].resolve())
    return ""
