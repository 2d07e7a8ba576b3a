import itertools
import json
import threading

import pytest

from speedlearning.internal_core.contracts import Association, DocumentState, GeneratedContent
from speedlearning.internal_core.errors import NotFoundFailure, StoreFailure, ValidationFailure
from speedlearning.internal_core.persistence import InMemoryPersistence, JsonFilePersistence
from speedlearning.internal_core.store import LibraryStore


def _ticking_clock():
    counter = itertools.count()

    def now() -> str:
        n = next(counter)
        return f"2026-01-01T{n // 3600:02d}:{(n // 60) % 60:02d}:{n % 60:02d}.000Z"

    return now


def _store(persistence=None) -> LibraryStore:
    return LibraryStore(persistence or InMemoryPersistence(), clock=_ticking_clock())


def _content(tag: str = "v") -> GeneratedContent:
    return GeneratedContent(
        short_summary=f"summary {tag}",
        extended_summary="## Seccion\n- punto",
        associations=[Association(concept="c", association="a", mnemonic="m")],
        mermaid_map="mindmap\n  root((Tema))\n    Rama",
        story="historia",
    )


def _seed_note(store: LibraryStore):
    book = store.create_book("Biologia")
    section = store.create_section(book.id, "Celulas")
    note = store.create_note(section.id, book.id, "Osmosis", content="a" * 60)
    return book, section, note


class FlakyPersistence(InMemoryPersistence):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def write(self, state: DocumentState) -> None:
        if self.fail:
            raise StoreFailure("disk full")
        super().write(state)


class BrokenPersistence(InMemoryPersistence):
    def write(self, state: DocumentState) -> None:
        raise OSError("read-only filesystem")


def test_versions_are_dense_for_sequential_appends() -> None:
    store = _store()
    _, _, note = _seed_note(store)
    versions = [store.append_presentation(note.id, _content(str(i))).version for i in range(5)]
    assert versions == [1, 2, 3, 4, 5]
    assert [p.version for p in store.list_presentations(note.id)] == [5, 4, 3, 2, 1]


def test_deleting_old_version_does_not_renumber_or_reuse() -> None:
    store = _store()
    _, _, note = _seed_note(store)
    created = [store.append_presentation(note.id, _content()) for _ in range(3)]
    store.delete_presentation(created[1].id)
    assert sorted(p.version for p in store.list_presentations(note.id)) == [1, 3]
    assert store.append_presentation(note.id, _content()).version == 4


def test_deleting_latest_version_still_advances_counter() -> None:
    store = _store()
    _, _, note = _seed_note(store)
    created = [store.append_presentation(note.id, _content()) for _ in range(3)]
    store.delete_presentation(created[-1].id)
    assert store.next_version(note.id) == 4
    assert store.append_presentation(note.id, _content()).version == 4


def test_version_counter_survives_reload() -> None:
    persistence = InMemoryPersistence()
    store = _store(persistence)
    _, _, note = _seed_note(store)
    for _ in range(2):
        latest = store.append_presentation(note.id, _content())
    store.delete_presentation(latest.id)

    reloaded = _store(persistence)
    assert reloaded.append_presentation(note.id, _content()).version == 3


def test_concurrent_appends_never_share_a_version() -> None:
    store = _store()
    _, _, note = _seed_note(store)
    results: list[int] = []
    results_lock = threading.Lock()

    def worker() -> None:
        for _ in range(5):
            version = store.append_presentation(note.id, _content()).version
            with results_lock:
                results.append(version)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results) == list(range(1, 41))


def test_append_for_unknown_note_is_not_found() -> None:
    store = _store()
    with pytest.raises(NotFoundFailure):
        store.append_presentation("missing", _content())


def test_delete_book_cascades_to_every_dependent() -> None:
    store = _store()
    book = store.create_book("Quimica")
    s1 = store.create_section(book.id, "S1")
    s2 = store.create_section(book.id, "S2")
    n1 = store.create_note(s1.id, book.id, "N1")
    n2 = store.create_note(s2.id, book.id, "N2")
    store.append_presentation(n1.id, _content())
    store.append_presentation(n2.id, _content())
    other = store.create_book("Historia")

    removed = store.delete_book(book.id)

    assert removed == {"sections": 2, "notes": 2, "presentations": 2}
    assert store.counts() == {"books": 1, "sections": 0, "notes": 0, "presentations": 0}
    assert [b.id for b in store.list_books()] == [other.id]
    with pytest.raises(NotFoundFailure):
        store.get_note(n1.id)


def test_delete_section_leaves_sibling_section_untouched() -> None:
    store = _store()
    book = store.create_book("Quimica")
    s1 = store.create_section(book.id, "S1")
    s2 = store.create_section(book.id, "S2")
    n1 = store.create_note(s1.id, book.id, "N1")
    n2 = store.create_note(s2.id, book.id, "N2")
    p1 = store.append_presentation(n1.id, _content())
    p2 = store.append_presentation(n2.id, _content())

    removed = store.delete_section(s1.id)

    assert removed == {"sections": 1, "notes": 1, "presentations": 1}
    assert [s.id for s in store.list_sections(book.id)] == [s2.id]
    assert store.get_note(n2.id).id == n2.id
    assert store.get_presentation(p2.id).id == p2.id
    with pytest.raises(NotFoundFailure):
        store.get_presentation(p1.id)
    with pytest.raises(NotFoundFailure):
        store.get_section(s1.id)


def test_delete_note_removes_its_presentations_and_counter() -> None:
    store = _store()
    book, section, note = _seed_note(store)
    store.append_presentation(note.id, _content())
    store.append_presentation(note.id, _content())

    assert store.delete_note(note.id) == {"sections": 0, "notes": 1, "presentations": 2}
    assert store.list_presentations(note.id) == []
    assert store.list_notes(section.id) == []
    assert store.next_version(note.id) == 1


@pytest.mark.parametrize(
    "method",
    ["delete_book", "delete_section", "delete_note", "delete_presentation", "get_book", "get_note"],
)
def test_unknown_ids_are_reported_not_found(method: str) -> None:
    store = _store()
    with pytest.raises(NotFoundFailure):
        getattr(store, method)("does-not-exist")


def test_create_section_requires_existing_book() -> None:
    store = _store()
    with pytest.raises(NotFoundFailure):
        store.create_section("nope", "Capitulo 1")


def test_create_note_rejects_mismatched_book() -> None:
    store = _store()
    book, section, _ = _seed_note(store)
    other = store.create_book("Otro")
    with pytest.raises(ValidationFailure):
        store.create_note(section.id, other.id, "Titulo")
    assert len(store.list_notes(section.id)) == 1
    assert store.get_book(book.id).name == "Biologia"


def test_create_book_applies_defaults_and_requires_name() -> None:
    store = _store()
    book = store.create_book("Fisica")
    assert book.color == "#4A90D9"
    assert book.icon == "\U0001F4DA"
    assert book.created_at == book.updated_at
    with pytest.raises(ValidationFailure):
        store.create_book("   ")


def test_update_book_only_changes_provided_fields() -> None:
    store = _store()
    book = store.create_book("Fisica", color="#000000", icon="x")
    updated = store.update_book(book.id, name="Fisica II", color="")
    assert updated.name == "Fisica II"
    assert updated.color == "#000000"
    assert updated.icon == "x"
    assert updated.updated_at > book.updated_at


def test_update_note_accepts_empty_content() -> None:
    store = _store()
    _, _, note = _seed_note(store)
    updated = store.update_note(note.id, content="")
    assert updated.content == ""
    assert updated.title == "Osmosis"


def test_listing_orders() -> None:
    store = _store()
    older = store.create_book("Primero")
    newer = store.create_book("Segundo")
    assert [b.id for b in store.list_books()] == [newer.id, older.id]

    s1 = store.create_section(older.id, "A")
    s2 = store.create_section(older.id, "B")
    assert [s.id for s in store.list_sections(older.id)] == [s1.id, s2.id]

    n1 = store.create_note(s1.id, older.id, "uno")
    n2 = store.create_note(s1.id, older.id, "dos")
    assert [n.id for n in store.list_notes(s1.id)] == [n2.id, n1.id]
    store.update_note(n1.id, title="uno editado")
    assert [n.id for n in store.list_notes(s1.id)] == [n1.id, n2.id]


def test_search_notes_is_case_insensitive_and_capped() -> None:
    store = _store()
    book = store.create_book("Biologia")
    section = store.create_section(book.id, "Celulas")
    for i in range(55):
        store.create_note(section.id, book.id, f"Nota {i}", content="Trata sobre OSMOSIS celular")
    store.create_note(section.id, book.id, "Mitocondria", content="energia")

    hits = store.search_notes("osmosis")
    assert len(hits) == 50
    assert all("osmosis" in h.content.lower() for h in hits)
    assert [n.title for n in store.search_notes("MITO")] == ["Mitocondria"]


def test_returned_records_are_copies() -> None:
    store = _store()
    book = store.create_book("Fisica")
    book.name = "mutated"
    assert store.get_book(book.id).name == "Fisica"


def test_failed_write_rolls_back_creation() -> None:
    persistence = FlakyPersistence()
    store = _store(persistence)
    store.create_book("Keep")
    persistence.fail = True
    with pytest.raises(StoreFailure):
        store.create_book("Lost")
    assert [b.name for b in store.list_books()] == ["Keep"]


def test_failed_write_rolls_back_cascade() -> None:
    persistence = FlakyPersistence()
    store = _store(persistence)
    book, section, note = _seed_note(store)
    store.append_presentation(note.id, _content())
    persistence.fail = True

    with pytest.raises(StoreFailure):
        store.delete_book(book.id)

    assert store.counts() == {"books": 1, "sections": 1, "notes": 1, "presentations": 1}
    assert store.list_notes(section.id)[0].id == note.id
    persistence.fail = False
    assert store.append_presentation(note.id, _content()).version == 2


def test_unexpected_write_error_is_reported_as_store_failure() -> None:
    store = LibraryStore(BrokenPersistence())
    with pytest.raises(StoreFailure, match="read-only"):
        store.create_book("Fisica")
    assert store.list_books() == []


def test_json_file_persistence_round_trip(tmp_path) -> None:
    path = tmp_path / "data" / "speedlearning.json"
    store = _store(JsonFilePersistence(path))
    _, _, note = _seed_note(store)
    store.append_presentation(note.id, _content())

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert set(raw) >= {"books", "sections", "notes", "presentations", "version_counters"}
    assert raw["version_counters"] == {note.id: 1}

    reloaded = _store(JsonFilePersistence(path))
    assert reloaded.counts() == {"books": 1, "sections": 1, "notes": 1, "presentations": 1}
    history = reloaded.list_presentations(note.id)
    assert history[0].associations[0].concept == "c"


def test_json_file_persistence_missing_and_corrupt(tmp_path) -> None:
    missing = JsonFilePersistence(tmp_path / "absent.json")
    assert missing.read() == DocumentState()

    corrupt_path = tmp_path / "corrupt.json"
    corrupt_path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreFailure):
        LibraryStore(JsonFilePersistence(corrupt_path))
