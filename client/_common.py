"""
Shared utilities for the sync and async service desk clients.

Request building and response interpretation used by both
ServiceDeskClient and AsyncServiceDeskClient.
No HTTP calls are made from this module.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

import json_utils as json
from services.attachment_manager import DEFAULT_MIME_TYPE

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:5000"
BASE_URL_ENV = "SERVICEDESK_BASE_URL"
API_TOKEN_ENV = "SERVICEDESK_API_TOKEN"

# (field name, filename, payload, content type)
FilePart = Tuple[str, str, bytes, str]


def resolve_endpoint(profile, record_id) -> str:
    """Return the record path for a form profile, e.g. ``/jobs/42``."""
    if record_id is None or str(record_id).strip() == "":
        raise ValueError("record_id is required")
    return f"{profile.endpoint.rstrip('/')}/{quote(str(record_id), safe='')}"


def normalize_field_value(value: Any) -> Optional[str]:
    """Render a form field the way a browser FormData would; None means skip."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value)
    text = str(value)
    return text if text != "" else None


def build_form_fields(profile, fields: Optional[Mapping[str, Any]], change_set) -> List[Tuple[str, str]]:
    """Build the non-file multipart fields for an edit submission.

    Empty values are dropped. The delete list is JSON encoded under the
    profile's delete field, and only sent when it is non-empty.
    """
    reserved = {profile.upload_field, profile.delete_field}
    result: List[Tuple[str, str]] = []
    for key, value in (fields or {}).items():
        if key in reserved:
            logger.warning("Ignoring form field %s reserved for attachments", key)
            continue
        rendered = normalize_field_value(value)
        if rendered is not None:
            result.append((key, rendered))
    if change_set is not None and change_set.ids_to_delete:
        result.append((profile.delete_field, json.encode_id_list(change_set.ids_to_delete)))
    return result


def build_file_parts(profile, change_set) -> List[FilePart]:
    """One multipart part per file to upload, in registry order."""
    if change_set is None:
        return []
    return [
        (
            profile.upload_field,
            local_file.name,
            local_file.read_bytes(),
            local_file.mime_type or DEFAULT_MIME_TYPE,
        )
        for local_file in change_set.files_to_upload
    ]


def unwrap_record(payload: Any) -> Dict[str, Any]:
    """Return the parent record from a response body.

    Some endpoints answer ``{"success": true, "data": {...}}``, others
    return the record itself.
    """
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    if isinstance(payload, dict):
        return payload
    raise ValueError("Unexpected response payload; expected a JSON object")


def extract_error_message(payload: Any, default: str) -> str:
    """Pick the user-displayable message out of an error response body."""
    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
            if isinstance(value, dict) and isinstance(value.get("message"), str):
                return value["message"]
    if isinstance(payload, str) and payload.strip():
        return payload.strip()[:500]
    return default


def parse_error_body(text: str) -> Any:
    """Best-effort JSON decode of an error body, falling back to raw text."""
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return text


def is_success_status(status: int) -> bool:
    return 200 <= status < 300
