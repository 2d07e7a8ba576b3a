from __future__ import annotations

import logging
from typing import Optional

from speedlearning.internal_core.contracts import Presentation
from speedlearning.internal_core.errors import ValidationFailure
from speedlearning.internal_core.store import LibraryStore
from speedlearning.presentations.generator import generate_learning_content
from speedlearning.presentations.images import ImageResolver, resolve_image_url
from speedlearning.presentations.llm_backends import TextGenerator

logger = logging.getLogger(__name__)

DEFAULT_MIN_NOTE_CHARS = 50


class PresentationService:
    """
    Validate, generate and persist one presentation version for a note.

    The store lock is never held across the model call: the note is checked
    before generation, and version stamping plus the existence re-check happen
    inside ``LibraryStore.append_presentation``.
    """

    def __init__(
        self,
        store: LibraryStore,
        generate: TextGenerator,
        *,
        image_resolver: Optional[ImageResolver] = None,
        min_note_chars: int = DEFAULT_MIN_NOTE_CHARS,
        debug_log_path: Optional[str] = None,
    ):
        self._store = store
        self._generate = generate
        self._image_resolver = image_resolver
        self._min_note_chars = min_note_chars
        self._debug_log_path = debug_log_path

    def validate_request(self, note_id: str, title: str, content: str) -> None:
        if not note_id or not title or not content:
            raise ValidationFailure("note_id, content, and title are required")
        if len(content.strip()) < self._min_note_chars:
            raise ValidationFailure(
                f"El contenido debe tener al menos {self._min_note_chars} caracteres"
            )

    def generate_presentation(self, note_id: str, title: str, content: str) -> Presentation:
        self.validate_request(note_id, title, content)
        self._store.get_note(note_id)

        logger.info("Generating presentation for note %s (%r)", note_id, title)
        generated = generate_learning_content(
            title,
            content,
            generate=self._generate,
            debug_log_path=self._debug_log_path,
        )
        image_url = resolve_image_url(self._image_resolver, title, generated.short_summary)

        presentation = self._store.append_presentation(note_id, generated, image_url=image_url)
        logger.info("Presentation v%s created for note %s", presentation.version, note_id)
        return presentation
