from __future__ import annotations

import uuid
from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Dict, List, Optional

from .contracts import (
    DEFAULT_BOOK_COLOR,
    DEFAULT_BOOK_ICON,
    DEFAULT_NOTE_TAGS,
    Book,
    DocumentState,
    GeneratedContent,
    Note,
    Presentation,
    Section,
)
from .errors import NotFoundFailure, StoreFailure, ValidationFailure
from .persistence import DocumentPersistence

NOTE_SEARCH_LIMIT = 50


def utc_now_iso() -> str:
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def _new_id() -> str:
    return uuid.uuid4().hex


def _require_text(value: Optional[str], field: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationFailure(f"{field} is required")
    return str(value)


class LibraryStore:
    """
    Book/section/note/presentation records over one persisted document.

    Every read-modify-write runs under a single lock and ends in one
    whole-document write. A failed write restores the previous in-memory
    state so the store never diverges from what was persisted.
    """

    def __init__(
        self,
        persistence: DocumentPersistence,
        *,
        clock: Callable[[], str] = utc_now_iso,
    ):
        self._persistence = persistence
        self._clock = clock
        self._lock = RLock()
        self._books: Dict[str, Book] = {}
        self._sections: Dict[str, Section] = {}
        self._notes: Dict[str, Note] = {}
        self._presentations: Dict[str, Presentation] = {}
        self._book_sections: Dict[str, List[str]] = {}
        self._section_notes: Dict[str, List[str]] = {}
        self._note_presentations: Dict[str, List[str]] = {}
        self._version_counters: Dict[str, int] = {}
        self._load(persistence.read())

    # ------------------------------------------------------------------
    # Loading / committing
    # ------------------------------------------------------------------

    def _load(self, state: DocumentState) -> None:
        with self._lock:
            self._books = {b.id: b for b in state.books}
            self._sections = {s.id: s for s in state.sections}
            self._notes = {n.id: n for n in state.notes}
            self._presentations = {p.id: p for p in state.presentations}
            self._book_sections = {}
            self._section_notes = {}
            self._note_presentations = {}
            for section in state.sections:
                self._book_sections.setdefault(section.book_id, []).append(section.id)
            for note in state.notes:
                self._section_notes.setdefault(note.section_id, []).append(note.id)
            for presentation in state.presentations:
                self._note_presentations.setdefault(presentation.note_id, []).append(presentation.id)
            self._version_counters = dict(state.version_counters)

    def _snapshot(self) -> dict:
        return {
            "books": dict(self._books),
            "sections": dict(self._sections),
            "notes": dict(self._notes),
            "presentations": dict(self._presentations),
            "book_sections": {k: list(v) for k, v in self._book_sections.items()},
            "section_notes": {k: list(v) for k, v in self._section_notes.items()},
            "note_presentations": {k: list(v) for k, v in self._note_presentations.items()},
            "version_counters": dict(self._version_counters),
        }

    def _restore(self, snapshot: dict) -> None:
        self._books = snapshot["books"]
        self._sections = snapshot["sections"]
        self._notes = snapshot["notes"]
        self._presentations = snapshot["presentations"]
        self._book_sections = snapshot["book_sections"]
        self._section_notes = snapshot["section_notes"]
        self._note_presentations = snapshot["note_presentations"]
        self._version_counters = snapshot["version_counters"]

    def _document(self) -> DocumentState:
        return DocumentState(
            books=list(self._books.values()),
            sections=list(self._sections.values()),
            notes=list(self._notes.values()),
            presentations=list(self._presentations.values()),
            version_counters=dict(self._version_counters),
        )

    def _commit(self, snapshot: dict) -> None:
        # Caller holds the lock and has already mutated in-memory state.
        try:
            self._persistence.write(self._document())
        except StoreFailure:
            self._restore(snapshot)
            raise
        except Exception as exc:
            self._restore(snapshot)
            raise StoreFailure(f"Document write failed: {exc}") from exc

    def counts(self) -> Dict[str, int]:
        with self._lock:
            return {
                "books": len(self._books),
                "sections": len(self._sections),
                "notes": len(self._notes),
                "presentations": len(self._presentations),
            }

    # ------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------

    def list_books(self) -> List[Book]:
        with self._lock:
            books = [b.model_copy() for b in self._books.values()]
        return sorted(books, key=lambda b: b.created_at, reverse=True)

    def get_book(self, book_id: str) -> Book:
        with self._lock:
            book = self._books.get(book_id)
            if book is None:
                raise NotFoundFailure("Book not found")
            return book.model_copy()

    def create_book(self, name: str, *, color: Optional[str] = None, icon: Optional[str] = None) -> Book:
        name = _require_text(name, "name")
        now = self._clock()
        book = Book(
            id=_new_id(),
            name=name,
            color=color or DEFAULT_BOOK_COLOR,
            icon=icon or DEFAULT_BOOK_ICON,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            snapshot = self._snapshot()
            self._books[book.id] = book
            self._book_sections.setdefault(book.id, [])
            self._commit(snapshot)
        return book.model_copy()

    def update_book(
        self,
        book_id: str,
        *,
        name: Optional[str] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Book:
        with self._lock:
            current = self._books.get(book_id)
            if current is None:
                raise NotFoundFailure("Book not found")
            changes: Dict[str, str] = {"updated_at": self._clock()}
            if name:
                changes["name"] = name
            if color:
                changes["color"] = color
            if icon:
                changes["icon"] = icon
            snapshot = self._snapshot()
            updated = current.model_copy(update=changes)
            self._books[book_id] = updated
            self._commit(snapshot)
            return updated.model_copy()

    def delete_book(self, book_id: str) -> Dict[str, int]:
        with self._lock:
            if book_id not in self._books:
                raise NotFoundFailure("Book not found")
            snapshot = self._snapshot()
            removed = {"sections": 0, "notes": 0, "presentations": 0}
            for section_id in list(self._book_sections.get(book_id, [])):
                self._drop_section(section_id, removed)
            self._book_sections.pop(book_id, None)
            del self._books[book_id]
            self._commit(snapshot)
            return removed

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def list_sections(self, book_id: str) -> List[Section]:
        with self._lock:
            sections = [self._sections[sid].model_copy() for sid in self._book_sections.get(book_id, [])]
        return sorted(sections, key=lambda s: s.created_at)

    def get_section(self, section_id: str) -> Section:
        with self._lock:
            section = self._sections.get(section_id)
            if section is None:
                raise NotFoundFailure("Section not found")
            return section.model_copy()

    def create_section(self, book_id: str, name: str) -> Section:
        book_id = _require_text(book_id, "book_id")
        name = _require_text(name, "name")
        now = self._clock()
        section = Section(id=_new_id(), book_id=book_id, name=name, created_at=now, updated_at=now)
        with self._lock:
            if book_id not in self._books:
                raise NotFoundFailure("Book not found")
            snapshot = self._snapshot()
            self._sections[section.id] = section
            self._book_sections.setdefault(book_id, []).append(section.id)
            self._section_notes.setdefault(section.id, [])
            self._commit(snapshot)
        return section.model_copy()

    def update_section(self, section_id: str, *, name: Optional[str] = None) -> Section:
        with self._lock:
            current = self._sections.get(section_id)
            if current is None:
                raise NotFoundFailure("Section not found")
            changes: Dict[str, str] = {"updated_at": self._clock()}
            if name:
                changes["name"] = name
            snapshot = self._snapshot()
            updated = current.model_copy(update=changes)
            self._sections[section_id] = updated
            self._commit(snapshot)
            return updated.model_copy()

    def delete_section(self, section_id: str) -> Dict[str, int]:
        with self._lock:
            section = self._sections.get(section_id)
            if section is None:
                raise NotFoundFailure("Section not found")
            snapshot = self._snapshot()
            removed = {"sections": 0, "notes": 0, "presentations": 0}
            self._drop_section(section_id, removed)
            self._commit(snapshot)
            return removed

    def _drop_section(self, section_id: str, removed: Dict[str, int]) -> None:
        section = self._sections.pop(section_id)
        for note_id in list(self._section_notes.get(section_id, [])):
            self._drop_note(note_id, removed)
        self._section_notes.pop(section_id, None)
        siblings = self._book_sections.get(section.book_id)
        if siblings and section_id in siblings:
            siblings.remove(section_id)
        removed["sections"] += 1

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def list_notes(self, section_id: str) -> List[Note]:
        with self._lock:
            notes = [self._notes[nid].model_copy() for nid in self._section_notes.get(section_id, [])]
        return sorted(notes, key=lambda n: n.updated_at, reverse=True)

    def search_notes(self, query: str, *, limit: int = NOTE_SEARCH_LIMIT) -> List[Note]:
        needle = str(query or "").lower()
        with self._lock:
            hits = [
                note.model_copy()
                for note in self._notes.values()
                if needle in note.title.lower() or needle in note.content.lower()
            ]
        hits.sort(key=lambda n: n.updated_at, reverse=True)
        return hits[:limit]

    def get_note(self, note_id: str) -> Note:
        with self._lock:
            note = self._notes.get(note_id)
            if note is None:
                raise NotFoundFailure("Note not found")
            return note.model_copy()

    def create_note(
        self,
        section_id: str,
        book_id: str,
        title: str,
        *,
        content: str = "",
        tags: str = DEFAULT_NOTE_TAGS,
    ) -> Note:
        section_id = _require_text(section_id, "section_id")
        book_id = _require_text(book_id, "book_id")
        title = _require_text(title, "title")
        now = self._clock()
        note = Note(
            id=_new_id(),
            section_id=section_id,
            book_id=book_id,
            title=title,
            content=content or "",
            tags=tags if tags is not None else DEFAULT_NOTE_TAGS,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            section = self._sections.get(section_id)
            if section is None:
                raise NotFoundFailure("Section not found")
            if section.book_id != book_id:
                raise ValidationFailure("book_id does not match the section's book")
            snapshot = self._snapshot()
            self._notes[note.id] = note
            self._section_notes.setdefault(section_id, []).append(note.id)
            self._note_presentations.setdefault(note.id, [])
            self._commit(snapshot)
        return note.model_copy()

    def update_note(
        self,
        note_id: str,
        *,
        title: Optional[str] = None,
        content: Optional[str] = None,
        tags: Optional[str] = None,
    ) -> Note:
        with self._lock:
            current = self._notes.get(note_id)
            if current is None:
                raise NotFoundFailure("Note not found")
            changes: Dict[str, str] = {"updated_at": self._clock()}
            if title is not None:
                changes["title"] = title
            if content is not None:
                changes["content"] = content
            if tags is not None:
                changes["tags"] = tags
            snapshot = self._snapshot()
            updated = current.model_copy(update=changes)
            self._notes[note_id] = updated
            self._commit(snapshot)
            return updated.model_copy()

    def delete_note(self, note_id: str) -> Dict[str, int]:
        with self._lock:
            if note_id not in self._notes:
                raise NotFoundFailure("Note not found")
            snapshot = self._snapshot()
            removed = {"sections": 0, "notes": 0, "presentations": 0}
            self._drop_note(note_id, removed)
            self._commit(snapshot)
            return removed

    def _drop_note(self, note_id: str, removed: Dict[str, int]) -> None:
        note = self._notes.pop(note_id)
        for presentation_id in self._note_presentations.pop(note_id, []):
            if self._presentations.pop(presentation_id, None) is not None:
                removed["presentations"] += 1
        self._version_counters.pop(note_id, None)
        siblings = self._section_notes.get(note.section_id)
        if siblings and note_id in siblings:
            siblings.remove(note_id)
        removed["notes"] += 1

    # ------------------------------------------------------------------
    # Presentations
    # ------------------------------------------------------------------

    def list_presentations(self, note_id: str) -> List[Presentation]:
        with self._lock:
            history = [
                self._presentations[pid].model_copy()
                for pid in self._note_presentations.get(note_id, [])
            ]
        return sorted(history, key=lambda p: (p.created_at, p.version), reverse=True)

    def get_presentation(self, presentation_id: str) -> Presentation:
        with self._lock:
            presentation = self._presentations.get(presentation_id)
            if presentation is None:
                raise NotFoundFailure("Presentation not found")
            return presentation.model_copy()

    def _next_version(self, note_id: str) -> int:
        existing = [self._presentations[pid].version for pid in self._note_presentations.get(note_id, [])]
        high_water = max([self._version_counters.get(note_id, 0), *existing])
        return high_water + 1

    def next_version(self, note_id: str) -> int:
        """Version the next append for ``note_id`` would receive right now."""
        with self._lock:
            return self._next_version(note_id)

    def append_presentation(
        self,
        note_id: str,
        content: GeneratedContent,
        *,
        image_url: Optional[str] = None,
    ) -> Presentation:
        with self._lock:
            if note_id not in self._notes:
                raise NotFoundFailure("Note not found")
            snapshot = self._snapshot()
            version = self._next_version(note_id)
            presentation = Presentation(
                id=_new_id(),
                note_id=note_id,
                version=version,
                short_summary=content.short_summary,
                extended_summary=content.extended_summary,
                associations=[a.model_copy() for a in content.associations],
                mermaid_map=content.mermaid_map,
                story=content.story,
                image_url=image_url,
                created_at=self._clock(),
            )
            self._presentations[presentation.id] = presentation
            self._note_presentations.setdefault(note_id, []).append(presentation.id)
            self._version_counters[note_id] = version
            self._commit(snapshot)
            return presentation.model_copy()

    def delete_presentation(self, presentation_id: str) -> None:
        with self._lock:
            presentation = self._presentations.get(presentation_id)
            if presentation is None:
                raise NotFoundFailure("Presentation not found")
            snapshot = self._snapshot()
            del self._presentations[presentation_id]
            history = self._note_presentations.get(presentation.note_id)
            if history and presentation_id in history:
                history.remove(presentation_id)
            self._commit(snapshot)
