from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr

DEFAULT_BOOK_COLOR = "#4A90D9"
DEFAULT_BOOK_ICON = "\U0001F4DA"
DEFAULT_NOTE_TAGS = "[]"


class Book(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    color: str = DEFAULT_BOOK_COLOR
    icon: str = DEFAULT_BOOK_ICON
    created_at: str
    updated_at: str


class Section(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    book_id: str
    name: str
    created_at: str
    updated_at: str


class Note(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    section_id: str
    book_id: str
    title: str
    content: str = ""
    tags: str = DEFAULT_NOTE_TAGS
    created_at: str
    updated_at: str


class Association(BaseModel):
    model_config = ConfigDict(extra="ignore")

    concept: StrictStr
    association: StrictStr
    mnemonic: StrictStr


class Presentation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    note_id: str
    version: int = Field(ge=1)
    short_summary: str
    extended_summary: str
    associations: List[Association] = Field(default_factory=list)
    mermaid_map: str
    story: str
    image_url: Optional[str] = None
    created_at: str


class GeneratedContent(BaseModel):
    """Payload the text model must return. Unknown keys are dropped."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    short_summary: StrictStr = Field(alias="shortSummary")
    extended_summary: StrictStr = Field(alias="extendedSummary")
    associations: List[Association]
    mermaid_map: StrictStr = Field(alias="mermaidMap")
    story: StrictStr = Field(alias="story")


class DocumentState(BaseModel):
    model_config = ConfigDict(extra="ignore")

    books: List[Book] = Field(default_factory=list)
    sections: List[Section] = Field(default_factory=list)
    notes: List[Note] = Field(default_factory=list)
    presentations: List[Presentation] = Field(default_factory=list)
    # Highest version ever issued per note id; survives deletion of that version.
    version_counters: Dict[str, int] = Field(default_factory=dict)
