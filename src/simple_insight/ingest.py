from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from .errors import MalformedExportError

logger = logging.getLogger(__name__)

OLD_TAG = "old"
PRIVATE_TAG = "private"


class _ExportNote(BaseModel):
    id: str
    content: str
    creationDate: str = ""
    lastModified: str = ""
    tags: Optional[List[str]] = None


class _NoteExport(BaseModel):
    activeNotes: List[_ExportNote]
    trashedNotes: List[_ExportNote]


@dataclass(frozen=True)
class Note:
    id: str
    content: str
    creation_date: str
    last_modified: str
    # Insertion-ordered and de-duplicated so line prefixes are stable.
    tags: Tuple[str, ...] = ()

    @property
    def title(self) -> str:
        return self.content.strip().split("\n", 1)[0].strip()

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


@dataclass(frozen=True)
class NoteLine:
    text: str
    note_id: str
    line_id: str = field(default_factory=lambda: str(uuid.uuid4()))


NoteMap = Dict[str, Note]


@dataclass
class ParsedNotes:
    lines: List[NoteLine]
    map: NoteMap


def _dedupe(tags: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(t for t in tags if t))


def split_note(content: str) -> Tuple[str, List[str]]:
    """Split note content into `(title, body_paragraphs)`.

    Paragraphs are blank-line delimited. A note without blank lines is split
    on single newlines instead, and a note that is one unbroken line becomes
    a single body paragraph with an empty title.
    """
    cleaned = content.replace("\r\n", "\n").strip()
    parts = cleaned.split("\n\n")
    if len(parts) < 2:
        parts = cleaned.split("\n")
    if len(parts) < 2:
        return "", [cleaned]
    return parts[0].strip(), parts[1:]


def lines_for_note(note: Note) -> List[NoteLine]:
    title, body = split_note(note.content)
    prefix = " ".join(note.tags)
    lines: List[NoteLine] = []
    for paragraph in body:
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        lines.append(NoteLine(text=f"{prefix} - {title} - {paragraph}", note_id=note.id))
    return lines


def lines_from_notes(notes: Iterable[Note]) -> List[NoteLine]:
    lines: List[NoteLine] = []
    for note in notes:
        lines.extend(lines_for_note(note))
    return lines


def parse_export(raw: bytes | str) -> ParsedNotes:
    """Parse a note export into indexable lines and a note map.

    Trashed notes are merged with active ones and tagged "old". Notes whose
    content is blank are skipped.
    """
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedExportError(f"Export is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedExportError("Export must be a JSON object with activeNotes and trashedNotes.")

    try:
        export = _NoteExport.model_validate(data)
    except ValidationError as e:
        raise MalformedExportError(f"Export does not contain the expected note collections:\n{e}") from e

    note_map: NoteMap = {}
    sources = [(n, False) for n in export.activeNotes] + [(n, True) for n in export.trashedNotes]
    for item, trashed in sources:
        content = item.content.strip()
        if not content:
            continue
        if item.id in note_map:
            logger.debug("Skipping duplicate note id %s", item.id)
            continue
        tags = list(item.tags or [])
        if trashed:
            tags.append(OLD_TAG)
        note_map[item.id] = Note(
            id=item.id,
            content=content,
            creation_date=item.creationDate,
            last_modified=item.lastModified,
            tags=_dedupe(tags),
        )

    lines = lines_from_notes(note_map.values())
    logger.info("Parsed %d notes into %d lines", len(note_map), len(lines))
    return ParsedNotes(lines=lines, map=note_map)


def serialize_notes(note_map: NoteMap) -> str:
    return json.dumps(
        [
            {
                "id": n.id,
                "content": n.content,
                "creationDate": n.creation_date,
                "lastModified": n.last_modified,
                "tags": list(n.tags),
            }
            for n in note_map.values()
        ]
    )


def deserialize_notes(blob: str) -> NoteMap:
    """Rebuild a note map from `serialize_notes` output. Tags are kept as stored."""
    try:
        items = [_ExportNote.model_validate(item) for item in json.loads(blob)]
    except (ValueError, TypeError) as e:
        raise MalformedExportError(f"Stored notes are unreadable: {e}") from e
    return {
        item.id: Note(
            id=item.id,
            content=item.content,
            creation_date=item.creationDate,
            last_modified=item.lastModified,
            tags=_dedupe(item.tags or []),
        )
        for item in items
    }


__all__ = [
    "OLD_TAG",
    "PRIVATE_TAG",
    "Note",
    "NoteLine",
    "NoteMap",
    "ParsedNotes",
    "split_note",
    "lines_for_note",
    "lines_from_notes",
    "parse_export",
    "serialize_notes",
    "deserialize_notes",
]
