"""Attachment lifecycle management for the service desk edit forms."""

from __future__ import annotations

import enum
import logging
import mimetypes
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from config import FormProfile

logger = logging.getLogger(__name__)


class AttachmentError(Exception):
    """Base exception for attachment errors."""


class AttachmentValidationError(AttachmentError):
    """Raised when server supplied attachment data is malformed."""


class AttachmentNotFoundError(AttachmentError):
    """Raised when a requested attachment entry cannot be located."""


class AttachmentStateError(AttachmentError):
    """Raised when an operation does not apply to the entry's origin."""


class AttachmentCapacityError(AttachmentError):
    """Raised when an operation would push the visible count past max_files."""


class PreviewResourceError(AttachmentError):
    """Raised when a preview handle is unknown to its store."""


ORIGIN_EXISTING = "existing"
ORIGIN_NEW = "new"

DEFAULT_MIME_TYPE = "application/octet-stream"


# -------------------------------
# Files and records
# -------------------------------

@dataclass
class LocalFile:
    """A file picked locally by the user and not yet uploaded."""

    name: str
    mime_type: str
    size_bytes: int
    content: Optional[bytes] = None
    path: Optional[Path] = None

    @classmethod
    def from_path(cls, path, mime_type: Optional[str] = None) -> "LocalFile":
        p = Path(path)
        resolved_mime = mime_type or mimetypes.guess_type(p.name)[0] or ""
        return cls(name=p.name, mime_type=resolved_mime, size_bytes=int(p.stat().st_size), path=p)

    @classmethod
    def from_bytes(cls, name: str, data: bytes, mime_type: Optional[str] = None) -> "LocalFile":
        resolved_mime = mime_type or mimetypes.guess_type(name)[0] or ""
        return cls(name=name, mime_type=resolved_mime, size_bytes=len(data), content=data)

    @property
    def is_image(self) -> bool:
        return is_image_type(self.mime_type)

    def read_bytes(self) -> bytes:
        """Return the file payload from memory or disk."""
        if self.content is not None:
            return self.content
        if self.path is None:
            raise AttachmentError(f"No content available for {self.name}")
        return self.path.read_bytes()


class ServerAttachment(BaseModel):
    """Attachment metadata as stored server-side, used for hydration."""

    server_id: str = Field(..., min_length=1, description="Identifier the server needs to delete the file")
    name: str = Field(default="", description="Original filename")
    mime_type: str = Field(default="", description="MIME type reported by the server")
    size_bytes: int = Field(default=0, ge=0, description="Stored size in bytes")
    url: Optional[str] = Field(default=None, description="Public URL of the stored file")

    @classmethod
    def from_api(cls, record: Dict[str, Any]) -> "ServerAttachment":
        """Normalize a raw attachment record returned by the service desk API.

        The backend stores uploads with ``public_id`` (falling back to the
        document ``_id``), and older records use ``originalname``/``mimetype``.
        """
        if not isinstance(record, dict):
            raise AttachmentValidationError("Attachment record must be an object")
        server_id = record.get("public_id") or record.get("_id") or record.get("server_id")
        if not server_id:
            raise AttachmentValidationError("Attachment record has no identifier")
        try:
            size = int(record.get("size") or record.get("size_bytes") or 0)
        except (TypeError, ValueError):
            size = 0
        return cls(
            server_id=str(server_id),
            name=record.get("name") or record.get("originalname") or "",
            mime_type=record.get("type") or record.get("mimetype") or record.get("mime_type") or "",
            size_bytes=max(size, 0),
            url=record.get("url"),
        )


@dataclass
class AttachmentEntry:
    """One attachment shown by the form, either stored already or newly picked."""

    id: str
    origin: str
    name: str
    mime_type: str
    size_bytes: int
    server_id: Optional[str] = None
    url: Optional[str] = None
    file: Optional[LocalFile] = None
    preview_handle: Optional[str] = None
    marked_for_deletion: bool = False

    @property
    def is_existing(self) -> bool:
        return self.origin == ORIGIN_EXISTING

    @property
    def is_new(self) -> bool:
        return self.origin == ORIGIN_NEW

    @property
    def is_image(self) -> bool:
        return is_image_type(self.mime_type)

    @property
    def display_url(self) -> Optional[str]:
        """URL the form renders as thumbnail, if any."""
        if self.is_new:
            return self.preview_handle
        return self.url

    @classmethod
    def from_server(cls, attachment: ServerAttachment) -> "AttachmentEntry":
        return cls(
            id=attachment.server_id,
            origin=ORIGIN_EXISTING,
            name=attachment.name,
            mime_type=attachment.mime_type,
            size_bytes=attachment.size_bytes,
            server_id=attachment.server_id,
            url=attachment.url,
        )

    @classmethod
    def from_local(cls, local_file: LocalFile) -> "AttachmentEntry":
        return cls(
            id=uuid.uuid4().hex,
            origin=ORIGIN_NEW,
            name=local_file.name,
            mime_type=local_file.mime_type,
            size_bytes=local_file.size_bytes,
            file=local_file,
        )


def is_image_type(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and mime_type.lower().startswith("image/")


def format_file_size(size_bytes: int) -> str:
    """Human readable size, e.g. ``5MB`` or ``1.5KB``."""
    value = float(max(size_bytes, 0))
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            text = f"{value:.2f}".rstrip("0").rstrip(".")
            return f"{text}{unit}"
        value /= 1024
    return f"{size_bytes}B"


# -------------------------------
# Validation
# -------------------------------

class RejectionReason(str, enum.Enum):
    UNSUPPORTED_TYPE = "UnsupportedType"
    TOO_LARGE = "TooLarge"
    CAPACITY_EXCEEDED = "CapacityExceeded"


@dataclass(frozen=True)
class ValidationResult:
    """Tagged outcome of validating a single file."""

    ok: bool
    reason: Optional[RejectionReason] = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def accept(cls) -> "ValidationResult":
        return cls(ok=True)

    @classmethod
    def reject(cls, reason: RejectionReason, message: str) -> "ValidationResult":
        return cls(ok=False, reason=reason, message=message)


@dataclass(frozen=True)
class FileRejection:
    """A file refused by add_files, with a message fit for the upload control."""

    file: LocalFile
    reason: RejectionReason
    message: str


class FileValidator:
    """Check candidate files against a MIME allow-list and a size limit.

    Allow-list entries are either exact types (``application/pdf``) or
    families (``image/*``).
    """

    def __init__(self, accepted_mime_types: Iterable[str], max_file_size_bytes: int) -> None:
        if max_file_size_bytes <= 0:
            raise ValueError("max_file_size_bytes must be positive")
        self.max_file_size_bytes = max_file_size_bytes
        self._exact: set = set()
        self._families: set = set()
        for value in accepted_mime_types:
            normalized = (value or "").strip().lower()
            if not normalized:
                continue
            if normalized in ("*", "*/*"):
                self._families.add("*")
            elif normalized.endswith("/*"):
                self._families.add(normalized[:-2])
            else:
                self._exact.add(normalized)

    def accepts_type(self, mime_type: Optional[str]) -> bool:
        normalized = (mime_type or "").strip().lower()
        if not normalized:
            return False
        if "*" in self._families or normalized in self._exact:
            return True
        return normalized.split("/", 1)[0] in self._families

    def validate(self, file: LocalFile) -> ValidationResult:
        if not self.accepts_type(file.mime_type):
            return ValidationResult.reject(
                RejectionReason.UNSUPPORTED_TYPE,
                f"File type not supported: {file.name}",
            )
        if file.size_bytes > self.max_file_size_bytes:
            return ValidationResult.reject(
                RejectionReason.TOO_LARGE,
                f"File too large (max {format_file_size(self.max_file_size_bytes)}): {file.name}",
            )
        return ValidationResult.accept()


# -------------------------------
# Preview resources
# -------------------------------

class ObjectUrlStore:
    """In-memory preview handles, one ``blob:`` URL per allocated file."""

    SCHEME = "blob:preview/"

    def __init__(self) -> None:
        self._objects: Dict[str, LocalFile] = {}

    def create(self, local_file: LocalFile) -> str:
        handle = f"{self.SCHEME}{uuid.uuid4()}"
        self._objects[handle] = local_file
        return handle

    def revoke(self, handle: str) -> None:
        if self._objects.pop(handle, None) is None:
            raise PreviewResourceError(f"Unknown preview handle: {handle}")

    def resolve(self, handle: str) -> LocalFile:
        try:
            return self._objects[handle]
        except KeyError:
            raise PreviewResourceError(f"Unknown preview handle: {handle}") from None

    def __len__(self) -> int:
        return len(self._objects)


class TempFilePreviewStore:
    """Preview handles backed by temporary files, for renderers that need a path."""

    def __init__(self, directory: Optional[str] = None) -> None:
        self.directory = directory
        self._paths: Dict[str, Path] = {}

    def create(self, local_file: LocalFile) -> str:
        suffix = Path(local_file.name).suffix or mimetypes.guess_extension(local_file.mime_type or "") or ""
        fd, raw_path = tempfile.mkstemp(prefix="preview-", suffix=suffix, dir=self.directory)
        path = Path(raw_path)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(local_file.read_bytes())
        except Exception:
            path.unlink(missing_ok=True)
            raise
        handle = path.as_uri()
        self._paths[handle] = path
        return handle

    def revoke(self, handle: str) -> None:
        path = self._paths.pop(handle, None)
        if path is None:
            raise PreviewResourceError(f"Unknown preview handle: {handle}")
        path.unlink(missing_ok=True)

    def __len__(self) -> int:
        return len(self._paths)


class PreviewResourceTracker:
    """Own the preview handle of every new-origin entry and free each exactly once."""

    def __init__(self, store=None) -> None:
        self.store = store if store is not None else ObjectUrlStore()
        self.allocated_count = 0
        self.released_count = 0
        self._owners: Dict[str, str] = {}

    @property
    def outstanding(self) -> int:
        return len(self._owners)

    def allocate(self, entry: AttachmentEntry) -> Optional[str]:
        """Create a preview for an image-like new entry and store the handle on it."""
        if not entry.is_new or entry.file is None:
            raise AttachmentStateError("Previews are only allocated for new attachments")
        if not entry.is_image:
            return None
        if entry.preview_handle is not None:
            return entry.preview_handle
        handle = self.store.create(entry.file)
        entry.preview_handle = handle
        self._owners[handle] = entry.id
        self.allocated_count += 1
        logger.debug("Allocated preview %s for %s", handle, entry.name)
        return handle

    def release(self, entry: AttachmentEntry) -> bool:
        """Free the entry's preview handle; a no-op when it holds none."""
        handle = entry.preview_handle
        if handle is None:
            return False
        self.store.revoke(handle)
        entry.preview_handle = None
        self._owners.pop(handle, None)
        self.released_count += 1
        logger.debug("Released preview %s for %s", handle, entry.name)
        return True


# -------------------------------
# Registry
# -------------------------------

@dataclass
class AddFilesResult:
    """Outcome of one add_files batch."""

    accepted: List[AttachmentEntry] = field(default_factory=list)
    rejected: List[FileRejection] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.rejected

    @property
    def messages(self) -> List[str]:
        return [rejection.message for rejection in self.rejected]


class AttachmentRegistry:
    """Single source of truth for the attachments of one form session."""

    def __init__(
        self,
        validator: FileValidator,
        max_files: int,
        tracker: Optional[PreviewResourceTracker] = None,
    ) -> None:
        if max_files < 1:
            raise ValueError("max_files must be at least 1")
        self.validator = validator
        self.max_files = max_files
        self.tracker = tracker if tracker is not None else PreviewResourceTracker()
        self._entries: List[AttachmentEntry] = []

    # -- read side -------------------------------------------------------

    @property
    def entries(self) -> Tuple[AttachmentEntry, ...]:
        """All entries in display order, pending deletions included."""
        return tuple(self._entries)

    @property
    def new_entries(self) -> List[AttachmentEntry]:
        return [entry for entry in self._entries if entry.is_new]

    @property
    def marked_entries(self) -> List[AttachmentEntry]:
        return [entry for entry in self._entries if entry.is_existing and entry.marked_for_deletion]

    @property
    def visible_count(self) -> int:
        return sum(1 for entry in self._entries if entry.is_new or not entry.marked_for_deletion)

    @property
    def remaining_capacity(self) -> int:
        return max(self.max_files - self.visible_count, 0)

    @property
    def pending_deletion_count(self) -> int:
        return len(self.marked_entries)

    def get(self, entry_id: str) -> Optional[AttachmentEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(tuple(self._entries))

    # -- mutations -------------------------------------------------------

    def hydrate(self, server_entries: Iterable[Any]) -> None:
        """Replace the whole registry with existing-origin entries from server data."""
        attachments = [self._coerce_server_entry(item) for item in server_entries or []]
        self._release_all()
        hydrated: List[AttachmentEntry] = []
        seen = set()
        for attachment in attachments:
            if attachment.server_id in seen:
                logger.warning("Skipping duplicate server attachment %s", attachment.server_id)
                continue
            seen.add(attachment.server_id)
            hydrated.append(AttachmentEntry.from_server(attachment))
        self._entries = hydrated
        logger.debug("Hydrated %d existing attachments", len(hydrated))

    def add_files(self, files: Sequence[LocalFile]) -> AddFilesResult:
        """Validate and append a batch of local files.

        Invalid files are skipped and reported. Once capacity runs out the
        rest of the batch is refused with CAPACITY_EXCEEDED; files accepted
        before that point are kept.
        """
        result = AddFilesResult()
        remaining = self.max_files - self.visible_count
        capacity_hit = False
        for local_file in files:
            if capacity_hit:
                result.rejected.append(self._capacity_rejection(local_file))
                continue
            verdict = self.validator.validate(local_file)
            if not verdict:
                result.rejected.append(FileRejection(local_file, verdict.reason, verdict.message))
                continue
            if remaining <= 0:
                capacity_hit = True
                result.rejected.append(self._capacity_rejection(local_file))
                continue
            result.accepted.append(AttachmentEntry.from_local(local_file))
            remaining -= 1

        try:
            for entry in result.accepted:
                self.tracker.allocate(entry)
        except Exception:
            for entry in result.accepted:
                self.tracker.release(entry)
            raise
        self._entries.extend(result.accepted)

        for rejection in result.rejected:
            logger.warning("Rejected %s: %s", rejection.file.name, rejection.reason.value)
        return result

    def remove_entry(self, entry_id: str) -> bool:
        """Remove a new entry outright or mark an existing one for deletion.

        Returns False when no entry has that id (e.g. a new entry removed twice).
        """
        entry = self.get(entry_id)
        if entry is None:
            logger.debug("remove_entry ignored unknown id %s", entry_id)
            return False
        if entry.is_new:
            self.tracker.release(entry)
            self._entries.remove(entry)
        else:
            entry.marked_for_deletion = True
        return True

    def unmark_deletion(self, entry_id: str) -> AttachmentEntry:
        """Bring a marked existing entry back, capacity permitting."""
        entry = self.get(entry_id)
        if entry is None:
            raise AttachmentNotFoundError(f"No attachment with id {entry_id}")
        if not entry.is_existing:
            raise AttachmentStateError("Only existing attachments can be unmarked")
        if not entry.marked_for_deletion:
            return entry
        if self.visible_count >= self.max_files:
            raise AttachmentCapacityError(f"Maximum {self.max_files} documents allowed")
        entry.marked_for_deletion = False
        return entry

    def reset(self, server_entries: Iterable[Any]) -> None:
        """Re-hydrate from the server's canonical list after a successful submit."""
        self.hydrate(server_entries)

    def discard(self) -> None:
        """Release every outstanding preview and drop all entries."""
        self._release_all()
        self._entries = []

    # -- helpers ---------------------------------------------------------

    def _release_all(self) -> None:
        for entry in self._entries:
            if entry.is_new:
                self.tracker.release(entry)

    def _capacity_rejection(self, local_file: LocalFile) -> FileRejection:
        return FileRejection(
            local_file,
            RejectionReason.CAPACITY_EXCEEDED,
            f"Maximum {self.max_files} documents allowed",
        )

    @staticmethod
    def _coerce_server_entry(item: Any) -> ServerAttachment:
        if isinstance(item, ServerAttachment):
            return item
        return ServerAttachment.from_api(item)


# -------------------------------
# Submission
# -------------------------------

@dataclass(frozen=True)
class ChangeSet:
    """Files to upload and server ids to delete on the next submit."""

    files_to_upload: Tuple[LocalFile, ...] = ()
    ids_to_delete: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.files_to_upload and not self.ids_to_delete


class SubmissionAssembler:
    """Derive the outgoing change-set from registry state without mutating it."""

    @staticmethod
    def assemble(registry: AttachmentRegistry) -> ChangeSet:
        files: List[LocalFile] = []
        ids: List[str] = []
        for entry in registry.entries:
            if entry.is_new and entry.file is not None:
                files.append(entry.file)
            elif entry.is_existing and entry.marked_for_deletion and entry.server_id not in ids:
                ids.append(entry.server_id)
        return ChangeSet(files_to_upload=tuple(files), ids_to_delete=tuple(ids))


# -------------------------------
# Facade
# -------------------------------

class AttachmentLifecycleManager:
    """Per-form attachment state: validation, previews, deletion marks, change-set.

    Build one from a FormProfile, or pass explicit limits::

        with AttachmentLifecycleManager.for_profile(get_form_profile("job")) as manager:
            manager.hydrate(job["attachments"])
            manager.add_files([LocalFile.from_path("photo.png")])
            change_set = manager.assemble()
    """

    def __init__(
        self,
        *,
        accepted_mime_types: Iterable[str],
        max_file_size_bytes: int,
        max_files: int,
        preview_store=None,
    ) -> None:
        self.validator = FileValidator(accepted_mime_types, max_file_size_bytes)
        self.tracker = PreviewResourceTracker(preview_store)
        self.registry = AttachmentRegistry(self.validator, max_files, self.tracker)
        self.assembler = SubmissionAssembler()

    @classmethod
    def for_profile(cls, profile: FormProfile, *, preview_store=None) -> "AttachmentLifecycleManager":
        return cls(
            accepted_mime_types=profile.accepted_mime_types,
            max_file_size_bytes=profile.max_file_size_bytes,
            max_files=profile.max_files,
            preview_store=preview_store,
        )

    def __enter__(self) -> "AttachmentLifecycleManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.discard()

    @property
    def max_files(self) -> int:
        return self.registry.max_files

    @property
    def entries(self) -> Tuple[AttachmentEntry, ...]:
        return self.registry.entries

    @property
    def visible_count(self) -> int:
        return self.registry.visible_count

    @property
    def pending_deletion_count(self) -> int:
        return self.registry.pending_deletion_count

    @property
    def can_add_files(self) -> bool:
        return self.registry.remaining_capacity > 0

    def hydrate(self, server_entries: Iterable[Any]) -> None:
        self.registry.hydrate(server_entries)

    def add_files(self, files: Sequence[LocalFile]) -> AddFilesResult:
        return self.registry.add_files(files)

    def remove_entry(self, entry_id: str) -> bool:
        return self.registry.remove_entry(entry_id)

    def unmark_deletion(self, entry_id: str) -> AttachmentEntry:
        return self.registry.unmark_deletion(entry_id)

    def assemble(self) -> ChangeSet:
        return self.assembler.assemble(self.registry)

    def reset(self, server_entries: Iterable[Any]) -> None:
        self.registry.reset(server_entries)

    def discard(self) -> None:
        self.registry.discard()
