"""Storage collaborator: load, save and existence checks for epic files.

``FileStorage`` writes through ``write_atomic`` so a crash never leaves a
half-written document. ``MemoryStorage`` keeps serialized documents in a
dict and goes through the same codec, so tests exercise identical
semantics without touching disk. ``repair_epic_file`` rewrites a file
whose hand edits left characters unescaped.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from agentpm.errors import EpicValidationError, StorageError
from agentpm.models import Epic
from agentpm.validation import validate_structure
from agentpm.xml_codec import XMLRepair, decode_epic, encode_epic, repair_xml

logger = logging.getLogger(__name__)


def write_atomic(path: Path, content: str) -> None:
    """Write content to path atomically via temp file + os.replace()."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


class Storage(Protocol):
    def load(self, path: str | Path) -> Epic: ...

    def save(self, epic: Epic, path: str | Path) -> None: ...

    def exists(self, path: str | Path) -> bool: ...


def parse_epic(text: str, source: str = "") -> Epic:
    """Decode and structurally validate a document."""
    epic, issues = decode_epic(text, source)
    issues.extend(validate_structure(epic))
    if issues:
        raise EpicValidationError(issues, source)
    return epic


def render_epic(epic: Epic, destination: str = "") -> str:
    """Structurally validate and encode an epic for persistence."""
    issues = validate_structure(epic)
    if issues:
        raise EpicValidationError(issues, destination)
    return encode_epic(epic)


class FileStorage:
    """Epic documents on the local filesystem."""

    def load(self, path: str | Path) -> Epic:
        path = Path(path)
        if not path.is_file():
            raise StorageError(f"Epic file not found: {path}", str(path))
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Failed to read epic file {path}: {exc}", str(path)) from exc
        return parse_epic(text, str(path))

    def save(self, epic: Epic, path: str | Path) -> None:
        path = Path(path)
        content = render_epic(epic, str(path))
        try:
            write_atomic(path, content)
        except OSError as exc:
            raise StorageError(f"Failed to save epic file {path}: {exc}", str(path)) from exc
        logger.debug("saved epic %s to %s (%d events)", epic.id, path, len(epic.events))

    def exists(self, path: str | Path) -> bool:
        return Path(path).is_file()


class MemoryStorage:
    """In-memory double keyed by path string."""

    def __init__(self) -> None:
        self.documents: dict[str, str] = {}

    def load(self, path: str | Path) -> Epic:
        key = str(path)
        if key not in self.documents:
            raise StorageError(f"Epic file not found: {key}", key)
        return parse_epic(self.documents[key], key)

    def save(self, epic: Epic, path: str | Path) -> None:
        self.documents[str(path)] = render_epic(epic, str(path))

    def exists(self, path: str | Path) -> bool:
        return str(path) in self.documents


# ---------------------------------------------------------------------------
# Repair
# ---------------------------------------------------------------------------


@dataclass
class RepairResult:
    path: str
    repairs: list[XMLRepair] = field(default_factory=list)
    backup: str | None = None
    written: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "repairs": [r.to_dict() for r in self.repairs],
            "backup": self.backup,
            "written": self.written,
        }


def repair_epic_file(path: str | Path, *, backup: bool = True, dry_run: bool = False) -> RepairResult:
    """Escape stray characters in an epic file and rewrite it.

    The repaired text must load as a valid epic before anything is
    written; otherwise the StorageError from parsing propagates and the
    file is left untouched. ``dry_run`` only reports the repairs.
    """
    path = Path(path)
    if not path.is_file():
        raise StorageError(f"Epic file not found: {path}", str(path))
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise StorageError(f"Failed to read epic file {path}: {exc}", str(path)) from exc
    fixed, repairs = repair_xml(text)
    result = RepairResult(str(path), repairs)
    if dry_run:
        return result
    parse_epic(fixed, str(path))
    if not repairs:
        return result
    try:
        if backup:
            backup_path = path.with_name(path.name + ".bak")
            shutil.copy2(path, backup_path)
            result.backup = str(backup_path)
        write_atomic(path, fixed)
    except OSError as exc:
        raise StorageError(f"Failed to write repaired epic file {path}: {exc}", str(path)) from exc
    result.written = True
    logger.info("Repaired %d XML problem(s) in %s", len(repairs), path)
    return result
