"""Undo/redo stacks for the artifact currently on display (in memory only)."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from cosmic_wallpaper.models.artifact import Artifact


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


class EditSession:
    def __init__(self) -> None:
        self.active: Optional[Artifact] = None
        self.undo_stack: list[Artifact] = []
        self.redo_stack: list[Artifact] = []

    @property
    def state(self) -> SessionState:
        return SessionState.IDLE if self.active is None else SessionState.ACTIVE

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo_stack)

    def select(self, artifact: Artifact) -> Artifact:
        """Display *artifact* with fresh, empty stacks."""
        self.active = artifact
        self.undo_stack.clear()
        self.redo_stack.clear()
        return artifact

    def apply_result(self, artifact: Artifact) -> Artifact:
        """Display the result of an edit; the old redo branch is discarded."""
        if self.active is not None:
            self.undo_stack.append(self.active)
        self.redo_stack.clear()
        self.active = artifact
        return artifact

    def undo(self) -> Optional[Artifact]:
        if not self.undo_stack:
            return self.active
        if self.active is not None:
            self.redo_stack.append(self.active)
        self.active = self.undo_stack.pop()
        return self.active

    def redo(self) -> Optional[Artifact]:
        if not self.redo_stack:
            return self.active
        if self.active is not None:
            self.undo_stack.append(self.active)
        self.active = self.redo_stack.pop()
        return self.active

    def clear(self) -> None:
        self.active = None
        self.undo_stack.clear()
        self.redo_stack.clear()

    def references(self, artifact_id: str) -> bool:
        return self.active is not None and self.active.id == artifact_id
