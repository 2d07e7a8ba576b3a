from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from speedlearning.utils.model_paths import discover_llama_cpp_gguf


def _project_root() -> Path:
    # speedlearning/internal_core/config.py -> speedlearning -> project
    return Path(__file__).resolve().parents[2]


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _getenv_list(name: str, default: str) -> tuple[str, ...]:
    raw = _getenv_str(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _resolve_debug_log_path(raw: str) -> Optional[str]:
    raw = raw.strip()
    if not raw:
        return None
    if raw.lower() in {"1", "true", "on", "yes"}:
        return "/tmp/speedlearning_llm_raw.log"
    return raw


@dataclass(frozen=True)
class AppConfig:
    SPEEDLEARNING_DATA_PATH: str
    SPEEDLEARNING_LLM_BACKEND: str
    SPEEDLEARNING_GEMINI_MODEL: str
    SPEEDLEARNING_GEMINI_API_KEY: str
    SPEEDLEARNING_LLAMA_CPP_MODEL: str
    SPEEDLEARNING_LLAMA_CPP_CHAT_FORMAT: str
    SPEEDLEARNING_LLAMA_CPP_N_CTX: int
    SPEEDLEARNING_LLAMA_CPP_N_GPU_LAYERS: int
    SPEEDLEARNING_LLM_MAX_TOKENS: int
    SPEEDLEARNING_LLM_TEMPERATURE: float
    SPEEDLEARNING_LLM_DEBUG_LOG: Optional[str]
    SPEEDLEARNING_MIN_NOTE_CHARS: int
    SPEEDLEARNING_IMAGE_BASE_URL: str
    SPEEDLEARNING_CORS_ORIGINS: tuple[str, ...]
    SPEEDLEARNING_LOG_LEVEL: str

    def data_path(self) -> Path:
        return Path(self.SPEEDLEARNING_DATA_PATH).expanduser().resolve()


def load_config() -> AppConfig:
    project_root = _project_root()
    default_data_path = str(project_root / "data" / "speedlearning.json")

    return AppConfig(
        SPEEDLEARNING_DATA_PATH=_getenv_str("SPEEDLEARNING_DATA_PATH", default_data_path),
        SPEEDLEARNING_LLM_BACKEND=_getenv_str("SPEEDLEARNING_LLM_BACKEND", "gemini").strip().lower(),
        SPEEDLEARNING_GEMINI_MODEL=_getenv_str("SPEEDLEARNING_GEMINI_MODEL", "gemini-2.5-flash"),
        SPEEDLEARNING_GEMINI_API_KEY=_getenv_str(
            "GEMINI_API_KEY",
            _getenv_str("GOOGLE_API_KEY", ""),
        ),
        SPEEDLEARNING_LLAMA_CPP_MODEL=_getenv_str(
            "SPEEDLEARNING_LLAMA_CPP_MODEL",
            discover_llama_cpp_gguf(),
        ),
        SPEEDLEARNING_LLAMA_CPP_CHAT_FORMAT=_getenv_str("SPEEDLEARNING_LLAMA_CPP_CHAT_FORMAT", "gemma"),
        SPEEDLEARNING_LLAMA_CPP_N_CTX=_getenv_int("SPEEDLEARNING_LLAMA_CPP_N_CTX", 8192),
        SPEEDLEARNING_LLAMA_CPP_N_GPU_LAYERS=_getenv_int("SPEEDLEARNING_LLAMA_CPP_N_GPU_LAYERS", -1),
        SPEEDLEARNING_LLM_MAX_TOKENS=_getenv_int("SPEEDLEARNING_LLM_MAX_TOKENS", 4096),
        SPEEDLEARNING_LLM_TEMPERATURE=_getenv_float("SPEEDLEARNING_LLM_TEMPERATURE", 0.7),
        SPEEDLEARNING_LLM_DEBUG_LOG=_resolve_debug_log_path(_getenv_str("SPEEDLEARNING_LLM_DEBUG_LOG", "")),
        SPEEDLEARNING_MIN_NOTE_CHARS=_getenv_int("SPEEDLEARNING_MIN_NOTE_CHARS", 50),
        SPEEDLEARNING_IMAGE_BASE_URL=_getenv_str("SPEEDLEARNING_IMAGE_BASE_URL", "https://picsum.photos"),
        SPEEDLEARNING_CORS_ORIGINS=_getenv_list(
            "SPEEDLEARNING_CORS_ORIGINS",
            "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173",
        ),
        SPEEDLEARNING_LOG_LEVEL=_getenv_str("SPEEDLEARNING_LOG_LEVEL", "INFO"),
    )
