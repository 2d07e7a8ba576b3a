from __future__ import annotations

"""
Text-generation backends behind a single ``generate(prompt) -> str`` callable.

Design intent:
- Import heavy SDKs lazily so the API starts without them installed.
- Keep each backend stateless from the caller's point of view (one prompt, one reply).
"""

import os
import threading
from typing import Any, Callable

from speedlearning.internal_core.config import AppConfig
from speedlearning.internal_core.errors import GenerationFailure

TextGenerator = Callable[[str], str]

SUPPORTED_BACKENDS: tuple[str, ...] = ("gemini", "llama_cpp")


class GeminiTextGenerator:
    def __init__(self, *, model_name: str, api_key: str, max_tokens: int, temperature: float):
        self.model_name = model_name
        self._api_key = api_key
        self.max_tokens = max_tokens
        self.temperature = temperature

    def __call__(self, prompt: str) -> str:
        api_key = self._api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        if not api_key:
            raise GenerationFailure(
                "Gemini API key not found. Set GEMINI_API_KEY or GOOGLE_API_KEY."
            )
        try:
            import google.generativeai as genai  # type: ignore
        except Exception as exc:
            raise GenerationFailure(f"google.generativeai import failed: {exc}") from exc

        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(
            model_name=self.model_name,
            generation_config={
                "max_output_tokens": int(self.max_tokens),
                "temperature": float(self.temperature),
                "response_mime_type": "application/json",
            },
        )
        resp = model.generate_content(prompt)
        return _response_text(resp)


def _response_text(resp: Any) -> str:
    try:
        text = (getattr(resp, "text", None) or "").strip()
    except ValueError:
        # .text raises when the candidate was blocked or has no parts.
        text = ""
    if text:
        return text
    parts: list[str] = []
    for candidate in getattr(resp, "candidates", None) or []:
        for part in getattr(getattr(candidate, "content", None), "parts", None) or []:
            value = getattr(part, "text", None)
            if value:
                parts.append(value)
    return "\n".join(parts).strip()


class LlamaCppTextGenerator:
    def __init__(
        self,
        *,
        model_path: str,
        chat_format: str,
        n_ctx: int,
        n_gpu_layers: int,
        max_tokens: int,
        temperature: float,
    ):
        self.model_path = model_path
        self.chat_format = chat_format
        self.n_ctx = n_ctx
        self.n_gpu_layers = n_gpu_layers
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.chat_format_applied: bool | None = None
        self._llm: Any = None
        self._load_lock = threading.Lock()
        self._call_lock = threading.Lock()

    def _load(self) -> Any:
        with self._load_lock:
            if self._llm is not None:
                return self._llm
            if not self.model_path:
                raise GenerationFailure(
                    "llama.cpp model path is missing. Set SPEEDLEARNING_LLAMA_CPP_MODEL "
                    "or place a GGUF file under SPEEDLEARNING_MODEL_ROOT."
                )
            if not os.path.exists(self.model_path):
                raise GenerationFailure(f"llama.cpp model file not found: {self.model_path}")
            try:
                from llama_cpp import Llama  # type: ignore
            except Exception as exc:
                raise GenerationFailure(f"llama_cpp import failed: {exc}") from exc

            llm_kwargs: dict[str, Any] = {
                "model_path": self.model_path,
                "n_ctx": int(self.n_ctx),
                "n_gpu_layers": int(self.n_gpu_layers),
                "verbose": False,
                "chat_format": self.chat_format,
            }
            try:
                self._llm = Llama(**llm_kwargs)
                self.chat_format_applied = True
            except TypeError as exc:
                if "chat_format" not in str(exc):
                    raise
                llm_kwargs.pop("chat_format", None)
                self._llm = Llama(**llm_kwargs)
                self.chat_format_applied = False
            return self._llm

    def __call__(self, prompt: str) -> str:
        llm = self._load()
        # A Llama instance is not safe for concurrent completions.
        with self._call_lock:
            resp = llm.create_chat_completion(
                messages=[{"role": "user", "content": prompt}],
                temperature=float(self.temperature),
                top_p=1.0,
                max_tokens=int(self.max_tokens),
                stop=["<end_of_turn>", "</s>"],
            )
        return str(resp["choices"][0]["message"]["content"] or "").strip()


def build_text_generator(config: AppConfig) -> TextGenerator:
    backend = config.SPEEDLEARNING_LLM_BACKEND
    if backend == "gemini":
        return GeminiTextGenerator(
            model_name=config.SPEEDLEARNING_GEMINI_MODEL,
            api_key=config.SPEEDLEARNING_GEMINI_API_KEY,
            max_tokens=config.SPEEDLEARNING_LLM_MAX_TOKENS,
            temperature=config.SPEEDLEARNING_LLM_TEMPERATURE,
        )
    if backend == "llama_cpp":
        return LlamaCppTextGenerator(
            model_path=config.SPEEDLEARNING_LLAMA_CPP_MODEL,
            chat_format=config.SPEEDLEARNING_LLAMA_CPP_CHAT_FORMAT,
            n_ctx=config.SPEEDLEARNING_LLAMA_CPP_N_CTX,
            n_gpu_layers=config.SPEEDLEARNING_LLAMA_CPP_N_GPU_LAYERS,
            max_tokens=config.SPEEDLEARNING_LLM_MAX_TOKENS,
            temperature=config.SPEEDLEARNING_LLM_TEMPERATURE,
        )
    raise GenerationFailure(
        f"Unsupported LLM backend: {backend!r} (expected one of {', '.join(SUPPORTED_BACKENDS)})"
    )
