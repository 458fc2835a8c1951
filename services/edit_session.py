"""Edit form session: attachment state plus the submit round-trip for one open form."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence

from client import ServiceDeskClientError
from config import FormProfile
from logging_utils import Event, FormEventLogger
from services.attachment_manager import (
    AddFilesResult,
    AttachmentEntry,
    AttachmentError,
    AttachmentLifecycleManager,
    AttachmentStateError,
    ChangeSet,
    LocalFile,
)

logger = logging.getLogger(__name__)


class FormBusyError(AttachmentError):
    """Raised when the form is used while a submission is outstanding."""


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of one submit attempt; ``error`` is shown as the form banner."""

    ok: bool
    record: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class EditFormSession:
    """One open edit form (job, parts request or system issue).

    The submitter is the external collaborator that talks to the API; any
    object with ``get_record`` and ``update_record`` coroutines works, such
    as AsyncServiceDeskClient.
    """

    def __init__(
        self,
        profile: FormProfile,
        submitter,
        record_id: Optional[str] = None,
        *,
        preview_store=None,
        session_id: Optional[str] = None,
    ) -> None:
        self.profile = profile
        self.submitter = submitter
        self.record_id = record_id
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self.manager = AttachmentLifecycleManager.for_profile(profile, preview_store=preview_store)
        self.events = FormEventLogger(profile.name, self.session_id, logger=logger)
        self.record: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None
        self._busy = False
        self._closed = False

    # -- state exposed to the form ----------------------------------------

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def entries(self) -> Sequence[AttachmentEntry]:
        return self.manager.entries

    @property
    def visible_count(self) -> int:
        return self.manager.visible_count

    @property
    def pending_deletion_count(self) -> int:
        return self.manager.pending_deletion_count

    @property
    def can_add_files(self) -> bool:
        return not self._busy and self.manager.can_add_files

    # -- lifecycle --------------------------------------------------------

    def open(self, record: Mapping[str, Any]) -> None:
        """Hydrate the form from a parent record supplied by the caller."""
        self._ensure_idle()
        self.record = dict(record)
        if self.record_id is None:
            self.record_id = self.record.get("_id") or self.record.get("id")
        attachments = self.record.get(self.profile.attachments_key) or []
        self.manager.hydrate(attachments)
        self.error = None
        self.events.event(Event.OPEN, f"record {self.record_id} with {len(self.manager.entries)} attachments")

    async def load(self, record_id: Optional[str] = None) -> Dict[str, Any]:
        """Fetch the parent record through the submitter, then open it."""
        self._ensure_idle()
        if record_id is not None:
            self.record_id = record_id
        if self.record_id is None:
            raise ValueError("record_id is required to load a form")
        record = await self.submitter.get_record(self.profile, self.record_id)
        self.open(record)
        return record

    def close(self) -> None:
        """Release every preview handle; the session cannot be used afterwards."""
        if self._closed:
            return
        self.manager.discard()
        self._closed = True
        self.events.event(Event.DISCARD, "form closed")

    # -- user actions -----------------------------------------------------

    def add_files(self, files: Sequence[LocalFile]) -> AddFilesResult:
        self._ensure_idle()
        result = self.manager.add_files(files)
        if result.accepted:
            self.events.event(Event.ADD, f"{len(result.accepted)} file(s) added")
        for message in result.messages:
            self.events.warning(message)
        return result

    def remove_entry(self, entry_id: str) -> bool:
        self._ensure_idle()
        changed = self.manager.remove_entry(entry_id)
        if changed:
            self.events.event(Event.REMOVE, f"entry {entry_id}")
        return changed

    def unmark_deletion(self, entry_id: str) -> AttachmentEntry:
        self._ensure_idle()
        entry = self.manager.unmark_deletion(entry_id)
        self.events.event(Event.UNMARK, f"entry {entry_id}")
        return entry

    def change_set(self) -> ChangeSet:
        return self.manager.assemble()

    async def submit(self, fields: Optional[Mapping[str, Any]] = None) -> SubmissionOutcome:
        """Send the form fields and attachment change-set in one request.

        On success the registry mirrors the record the server returned. On a
        client error the registry is left exactly as it was so the user can
        retry.
        """
        self._ensure_idle()
        if self.record_id is None:
            raise ValueError("record_id is required to submit a form")
        self._busy = True
        self.error = None
        try:
            change_set = self.manager.assemble()
            with self.events.timed(Event.SUBMIT):
                try:
                    record = await self.submitter.update_record(
                        self.profile, self.record_id, dict(fields or {}), change_set
                    )
                except ServiceDeskClientError as exc:
                    self.error = str(exc) or f"Failed to update {self.profile.name.replace('_', ' ')}"
                    self.events.error(self.error)
                    return SubmissionOutcome(ok=False, error=self.error)

            self.record = dict(record)
            if self._closed:
                self.events.debug("closed during submit, registry stays discarded")
                return SubmissionOutcome(ok=True, record=self.record)
            self.manager.reset(self.record.get(self.profile.attachments_key) or [])
            self.events.event(Event.RESET, f"{len(self.manager.entries)} attachments on record")
            return SubmissionOutcome(ok=True, record=self.record)
        finally:
            self._busy = False

    # -- guards -----------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise AttachmentStateError("The form has been closed")

    def _ensure_idle(self) -> None:
        self._ensure_open()
        if self._busy:
            raise FormBusyError("A submission is already in progress")
