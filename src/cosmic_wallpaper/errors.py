"""Failure taxonomy shared by the generation, persistence and backup paths."""

from __future__ import annotations


class CosmicWallpaperError(Exception):
    """Base class for every domain failure."""


class InvalidRequest(CosmicWallpaperError, ValueError):
    """A request failed validation before anything was dispatched."""


class GenerationInProgress(CosmicWallpaperError):
    """Another generation is still running; only one may run at a time."""


# ---------------------------------------------------------------------------
# Generation path
# ---------------------------------------------------------------------------


class GenerationError(CosmicWallpaperError):
    """Base class for failures surfaced by the orchestrator."""

    user_message = "Generation failed. Please try again."


class CredentialRequired(GenerationError):
    """No usable credential is selected, or it was revoked mid-flight."""

    user_message = "A selected API key with billing enabled is required."


class EmptyResult(GenerationError):
    """The backend reported success but returned no usable media."""


class DownloadFailed(GenerationError):
    """The final media could not be fetched."""


class TransportError(GenerationError):
    """The backend call itself failed (network, malformed request, job error)."""


class GenerationCancelled(GenerationError):
    """The caller abandoned the poll loop; the backend job may still be running."""

    user_message = "Generation was cancelled."


# ---------------------------------------------------------------------------
# Persistence path
# ---------------------------------------------------------------------------


class StoreError(CosmicWallpaperError):
    """Base class for local store failures."""


class StoreUnavailable(StoreError):
    """The local store could not be opened or read."""


class WriteRejected(StoreError):
    """A write was refused (storage exhausted, serialization failure)."""


# ---------------------------------------------------------------------------
# Backup path
# ---------------------------------------------------------------------------


class ImportMalformed(CosmicWallpaperError):
    """A backup document, or one of its fields, could not be imported."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason
