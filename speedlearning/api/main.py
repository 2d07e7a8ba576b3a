from __future__ import annotations

"""
HTTP API for the SpeedLearning backend.

Design intent:
- Keep routers thin: validation and persistence live in the store, generation
  in the presentation service.
- Hold collaborators on ``app.state`` so tests can inject fakes.
- Map domain failures to stable status codes.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from speedlearning.internal_core.config import AppConfig, load_config
from speedlearning.internal_core.contracts import DEFAULT_NOTE_TAGS, Book, Note, Presentation, Section
from speedlearning.internal_core.errors import (
    GenerationFailure,
    NotFoundFailure,
    SpeedLearningError,
    StoreFailure,
    ValidationFailure,
)
from speedlearning.internal_core.persistence import JsonFilePersistence
from speedlearning.internal_core.store import LibraryStore
from speedlearning.presentations.images import ImageResolver, PicsumImageResolver
from speedlearning.presentations.llm_backends import TextGenerator, build_text_generator
from speedlearning.presentations.service import PresentationService

API_VERSION = "1.0.0"


class BookCreateRequest(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None


class BookUpdateRequest(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None


class SectionCreateRequest(BaseModel):
    book_id: Optional[str] = None
    name: Optional[str] = None


class SectionUpdateRequest(BaseModel):
    name: Optional[str] = None


class NoteCreateRequest(BaseModel):
    section_id: Optional[str] = None
    book_id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    tags: Optional[str] = None


class NoteUpdateRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    tags: Optional[str] = None


class GenerateRequest(BaseModel):
    note_id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None


class BookResponse(BaseModel):
    success: bool = True
    data: Book


class BookListResponse(BaseModel):
    success: bool = True
    data: list[Book] = Field(default_factory=list)


class SectionResponse(BaseModel):
    success: bool = True
    data: Section


class SectionListResponse(BaseModel):
    success: bool = True
    data: list[Section] = Field(default_factory=list)


class NoteResponse(BaseModel):
    success: bool = True
    data: Note


class NoteListResponse(BaseModel):
    success: bool = True
    data: list[Note] = Field(default_factory=list)


class PresentationResponse(BaseModel):
    success: bool = True
    data: Presentation


class PresentationListResponse(BaseModel):
    success: bool = True
    data: list[Presentation] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    success: bool = True
    message: str
    removed: dict[str, int] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str


_BOOT_CONFIG = load_config()

app = FastAPI(title="speedlearning backend service", version=API_VERSION)
logger = logging.getLogger(__name__)
_STATE_LOCK = threading.Lock()

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(_BOOT_CONFIG.SPEEDLEARNING_CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _get_config() -> AppConfig:
    existing = getattr(app.state, "config", None)
    if isinstance(existing, AppConfig):
        return existing
    setattr(app.state, "config", _BOOT_CONFIG)
    return _BOOT_CONFIG


def _get_store() -> LibraryStore:
    with _STATE_LOCK:
        existing = getattr(app.state, "library_store", None)
        if isinstance(existing, LibraryStore):
            return existing
        config = _get_config()
        logging.getLogger("speedlearning").setLevel(config.SPEEDLEARNING_LOG_LEVEL.upper())
        persistence = JsonFilePersistence(config.data_path())
        created = LibraryStore(persistence)
        counts = created.counts()
        logger.info(
            "Database initialized at %s (books=%s sections=%s notes=%s presentations=%s)",
            persistence.path,
            counts["books"],
            counts["sections"],
            counts["notes"],
            counts["presentations"],
        )
        setattr(app.state, "library_store", created)
        return created


def _get_text_generator() -> TextGenerator:
    with _STATE_LOCK:
        existing = getattr(app.state, "text_generator", None)
        if callable(existing):
            return existing
        created = build_text_generator(_get_config())
        setattr(app.state, "text_generator", created)
        return created


def _get_image_resolver() -> Optional[ImageResolver]:
    with _STATE_LOCK:
        if hasattr(app.state, "image_resolver"):
            return getattr(app.state, "image_resolver")
        created = PicsumImageResolver(_get_config().SPEEDLEARNING_IMAGE_BASE_URL)
        setattr(app.state, "image_resolver", created)
        return created


def _get_presentation_service() -> PresentationService:
    config = _get_config()
    return PresentationService(
        _get_store(),
        lambda prompt: _get_text_generator()(prompt),
        image_resolver=_get_image_resolver(),
        min_note_chars=config.SPEEDLEARNING_MIN_NOTE_CHARS,
        debug_log_path=config.SPEEDLEARNING_LLM_DEBUG_LOG,
    )


def _http_error(exc: SpeedLearningError) -> HTTPException:
    if isinstance(exc, ValidationFailure):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NotFoundFailure):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, GenerationFailure):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, StoreFailure):
        logger.error("Store failure: %s", exc)
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


@app.get("/api/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", timestamp=_utc_now_iso(), version=API_VERSION)


# ----------------------------------------------------------------------
# Books
# ----------------------------------------------------------------------


@app.get("/api/books", response_model=BookListResponse)
async def list_books() -> BookListResponse:
    try:
        return BookListResponse(data=_get_store().list_books())
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc


@app.get("/api/books/{book_id}", response_model=BookResponse)
async def get_book(book_id: str) -> BookResponse:
    try:
        return BookResponse(data=_get_store().get_book(book_id))
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc


@app.post("/api/books", response_model=BookResponse, status_code=201)
async def create_book(payload: BookCreateRequest) -> BookResponse:
    try:
        book = _get_store().create_book(payload.name or "", color=payload.color, icon=payload.icon)
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc
    return BookResponse(data=book)


@app.put("/api/books/{book_id}", response_model=BookResponse)
async def update_book(book_id: str, payload: BookUpdateRequest) -> BookResponse:
    try:
        book = _get_store().update_book(book_id, name=payload.name, color=payload.color, icon=payload.icon)
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc
    return BookResponse(data=book)


@app.delete("/api/books/{book_id}", response_model=DeleteResponse)
async def delete_book(book_id: str) -> DeleteResponse:
    try:
        removed = _get_store().delete_book(book_id)
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc
    return DeleteResponse(message="Book deleted", removed=removed)


# ----------------------------------------------------------------------
# Sections
# ----------------------------------------------------------------------


@app.get("/api/sections/book/{book_id}", response_model=SectionListResponse)
async def list_sections(book_id: str) -> SectionListResponse:
    try:
        return SectionListResponse(data=_get_store().list_sections(book_id))
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc


@app.get("/api/sections/{section_id}", response_model=SectionResponse)
async def get_section(section_id: str) -> SectionResponse:
    try:
        return SectionResponse(data=_get_store().get_section(section_id))
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc


@app.post("/api/sections", response_model=SectionResponse, status_code=201)
async def create_section(payload: SectionCreateRequest) -> SectionResponse:
    try:
        section = _get_store().create_section(payload.book_id or "", payload.name or "")
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc
    return SectionResponse(data=section)


@app.put("/api/sections/{section_id}", response_model=SectionResponse)
async def update_section(section_id: str, payload: SectionUpdateRequest) -> SectionResponse:
    try:
        section = _get_store().update_section(section_id, name=payload.name)
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc
    return SectionResponse(data=section)


@app.delete("/api/sections/{section_id}", response_model=DeleteResponse)
async def delete_section(section_id: str) -> DeleteResponse:
    try:
        removed = _get_store().delete_section(section_id)
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc
    return DeleteResponse(message="Section deleted", removed=removed)


# ----------------------------------------------------------------------
# Notes
# ----------------------------------------------------------------------


@app.get("/api/notes/section/{section_id}", response_model=NoteListResponse)
async def list_notes(section_id: str) -> NoteListResponse:
    try:
        return NoteListResponse(data=_get_store().list_notes(section_id))
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc


@app.get("/api/notes/search/{query}", response_model=NoteListResponse)
async def search_notes(query: str) -> NoteListResponse:
    try:
        return NoteListResponse(data=_get_store().search_notes(query))
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc


@app.get("/api/notes/{note_id}", response_model=NoteResponse)
async def get_note(note_id: str) -> NoteResponse:
    try:
        return NoteResponse(data=_get_store().get_note(note_id))
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc


@app.post("/api/notes", response_model=NoteResponse, status_code=201)
async def create_note(payload: NoteCreateRequest) -> NoteResponse:
    if not payload.section_id or not payload.book_id or not payload.title:
        raise HTTPException(status_code=400, detail="section_id, book_id, and title required")
    try:
        note = _get_store().create_note(
            payload.section_id,
            payload.book_id,
            payload.title,
            content=payload.content or "",
            tags=payload.tags if payload.tags is not None else DEFAULT_NOTE_TAGS,
        )
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc
    return NoteResponse(data=note)


@app.put("/api/notes/{note_id}", response_model=NoteResponse)
async def update_note(note_id: str, payload: NoteUpdateRequest) -> NoteResponse:
    try:
        note = _get_store().update_note(
            note_id,
            title=payload.title,
            content=payload.content,
            tags=payload.tags,
        )
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc
    return NoteResponse(data=note)


@app.delete("/api/notes/{note_id}", response_model=DeleteResponse)
async def delete_note(note_id: str) -> DeleteResponse:
    try:
        removed = _get_store().delete_note(note_id)
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc
    return DeleteResponse(message="Note deleted", removed=removed)


# ----------------------------------------------------------------------
# Presentations
# ----------------------------------------------------------------------


@app.get("/api/presentations/note/{note_id}", response_model=PresentationListResponse)
async def list_presentations(note_id: str) -> PresentationListResponse:
    try:
        return PresentationListResponse(data=_get_store().list_presentations(note_id))
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc


@app.get("/api/presentations/{presentation_id}", response_model=PresentationResponse)
async def get_presentation(presentation_id: str) -> PresentationResponse:
    try:
        return PresentationResponse(data=_get_store().get_presentation(presentation_id))
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc


@app.post("/api/presentations/generate", response_model=PresentationResponse, status_code=201)
def generate_presentation(payload: GenerateRequest) -> PresentationResponse:
    # Sync handler: FastAPI runs it in the threadpool so the model call never blocks the loop.
    try:
        service = _get_presentation_service()
        presentation = service.generate_presentation(
            payload.note_id or "",
            payload.title or "",
            payload.content or "",
        )
    except SpeedLearningError as exc:
        if isinstance(exc, GenerationFailure):
            logger.warning("Generation failed for note %s: %s", payload.note_id, exc)
        raise _http_error(exc) from exc
    return PresentationResponse(data=presentation)


@app.delete("/api/presentations/{presentation_id}", response_model=DeleteResponse)
async def delete_presentation(presentation_id: str) -> DeleteResponse:
    try:
        _get_store().delete_presentation(presentation_id)
    except SpeedLearningError as exc:
        raise _http_error(exc) from exc
    return DeleteResponse(message="Presentation deleted")
