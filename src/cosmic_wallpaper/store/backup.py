"""JSON backup export and import for the History and Library collections."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import TypeAdapter, ValidationError

from cosmic_wallpaper.errors import ImportMalformed
from cosmic_wallpaper.models.artifact import Artifact
from cosmic_wallpaper.store.persistent import Collection, PersistentStore

logger = structlog.get_logger()

_ARTIFACT_LIST = TypeAdapter(list[Artifact])


@dataclass
class ImportReport:
    imported: dict[str, int] = field(default_factory=dict)
    problems: list[ImportMalformed] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


async def export_backup(store: PersistentStore) -> dict[str, Any]:
    """Snapshot both collections as a JSON-safe backup document."""
    history = await store.get_all(Collection.HISTORY)
    library = await store.get_all(Collection.LIBRARY)
    logger.info("backup.export", history=len(history), library=len(library))
    return {
        "history": [a.to_document() for a in history],
        "library": [a.to_document() for a in library],
        "exportDate": datetime.now(timezone.utc).isoformat(),
    }


def backup_filename(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"cosmic-wallpaper-backup-{now.date().isoformat()}.json"


def _parse_document(document: Any) -> dict[str, Any]:
    if isinstance(document, (str, bytes, bytearray)):
        try:
            document = json.loads(document)
        except ValueError as exc:
            raise ImportMalformed("document", f"not valid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise ImportMalformed("document", "top level must be a JSON object")
    return document


async def import_backup(store: PersistentStore, document: Any) -> ImportReport:
    """Replace each collection with the matching array from *document*.

    A field that is missing, not an array, or holds an invalid artifact leaves
    that collection untouched and is reported; the other field still imports.

    Raises:
        ImportMalformed: If the document as a whole is unreadable.
    """
    data = _parse_document(document)
    report = ImportReport()

    for collection in (Collection.HISTORY, Collection.LIBRARY):
        name = collection.value
        if name not in data:
            continue
        value = data[name]
        if not isinstance(value, list):
            report.problems.append(ImportMalformed(name, "expected an array"))
            logger.warning("backup.import.field_skipped", field=name, reason="not an array")
            continue
        try:
            artifacts = _ARTIFACT_LIST.validate_python(value)
        except ValidationError as exc:
            report.problems.append(
                ImportMalformed(name, f"{exc.error_count()} invalid artifact field(s)")
            )
            logger.warning("backup.import.field_skipped", field=name, reason="invalid artifacts")
            continue
        await store.replace_all(collection, artifacts)
        report.imported[name] = len(artifacts)

    logger.info("backup.import.done", imported=report.imported, problems=len(report.problems))
    return report
