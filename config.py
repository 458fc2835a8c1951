"""
Configuration for the Service Desk attachment forms
===================================================

Central configuration for the edit forms that manage attachments (jobs,
parts requests, system issues) and for the API client they submit through.
Values come from defaults below, optionally overridden by environment
variables (a local .env file is honoured).
"""

import os
from typing import Dict, List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()


MB = 1024 * 1024

DOCUMENT_MIME_TYPES: List[str] = [
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
]

SCREENSHOT_MIME_TYPES: List[str] = ["image/*"]


class FormProfile(BaseModel):
    """Attachment limits and wire names for one edit form."""

    name: str = Field(..., description="Short identifier of the form")
    endpoint: str = Field(..., description="Collection endpoint of the parent record, e.g. /jobs")
    http_method: str = Field(default="PUT", description="HTTP method used to submit the edit form")
    attachments_key: str = Field(
        default="attachments",
        description="Key of the attachment list inside the parent record",
    )
    upload_field: str = Field(
        default="documents",
        description="Multipart field name carrying newly added files",
    )
    delete_field: str = Field(
        default="documents_to_delete",
        description="Multipart field name carrying the JSON list of server ids to delete",
    )
    accepted_mime_types: List[str] = Field(
        default_factory=lambda: list(DOCUMENT_MIME_TYPES),
        description="MIME types (or type/* families) accepted by the form",
    )
    max_file_size_bytes: int = Field(
        default=5 * MB,
        gt=0,
        description="Maximum allowed size of a single file in bytes",
    )
    max_files: int = Field(
        default=5,
        ge=1,
        description="Maximum number of attachments visible on the record",
    )


def _default_forms() -> Dict[str, FormProfile]:
    return {
        "job": FormProfile(
            name="job",
            endpoint="/jobs",
            http_method="PUT",
            attachments_key="attachments",
            upload_field="documents",
            delete_field="documents_to_delete",
        ),
        "parts_request": FormProfile(
            name="parts_request",
            endpoint="/parts-requests",
            http_method="PUT",
            attachments_key="attachments",
            # The backend route parses uploads from "attachments".
            upload_field="attachments",
            delete_field="documents_to_delete",
        ),
        "system_issue": FormProfile(
            name="system_issue",
            endpoint="/system-issues",
            http_method="PATCH",
            attachments_key="screenshots",
            upload_field="screenshots",
            delete_field="screenshots_to_delete",
            accepted_mime_types=list(SCREENSHOT_MIME_TYPES),
        ),
    }


class Config(BaseModel):
    """Configuration settings for the attachment forms and API client."""

    API_BASE_URL: str = Field(default="http://localhost:5000", description="Service desk API base URL")
    API_TOKEN: str = Field(default="", description="Bearer token sent with API requests")
    REQUEST_TIMEOUT: float = Field(default=60.0, gt=0, description="Seconds before an API request times out")
    LOG_LEVEL: str = Field(default="INFO", description="Root logging level")
    FORMS: Dict[str, FormProfile] = Field(
        default_factory=_default_forms,
        description="Attachment profiles keyed by form name",
    )

    def __init__(self, **data):
        super().__init__(**data)
        self.load_from_environment()

    def load_from_environment(self):
        """Load configuration overrides from environment variables."""
        self.API_BASE_URL = os.getenv("SERVICEDESK_BASE_URL", self.API_BASE_URL).rstrip("/")
        self.API_TOKEN = os.getenv("SERVICEDESK_API_TOKEN", self.API_TOKEN)
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", self.LOG_LEVEL).upper()

        timeout_override = os.getenv("SERVICEDESK_REQUEST_TIMEOUT")
        if timeout_override:
            try:
                parsed = float(timeout_override)
                if parsed > 0:
                    self.REQUEST_TIMEOUT = parsed
            except ValueError:
                pass

        max_size_override = os.getenv("ATTACHMENTS_MAX_SIZE_BYTES")
        if max_size_override:
            try:
                parsed = int(max_size_override)
                if parsed > 0:
                    for profile in self.FORMS.values():
                        profile.max_file_size_bytes = parsed
            except ValueError:
                pass

        max_files_override = os.getenv("ATTACHMENTS_MAX_FILES")
        if max_files_override:
            try:
                parsed = int(max_files_override)
                if parsed > 0:
                    for profile in self.FORMS.values():
                        profile.max_files = parsed
            except ValueError:
                pass

        allowed_mime_override = os.getenv("ATTACHMENTS_ALLOWED_MIME_TYPES")
        if allowed_mime_override:
            allowed_values = [value.strip().lower() for value in allowed_mime_override.split(",") if value.strip()]
            if allowed_values:
                for profile in self.FORMS.values():
                    profile.accepted_mime_types = list(allowed_values)

    def get_form_profile(self, name: str) -> FormProfile:
        """Return the profile for a form, raising KeyError for unknown names."""
        try:
            return self.FORMS[name]
        except KeyError:
            raise KeyError(f"Unknown form profile: {name}") from None


# Global configuration instance
config = Config()


def get_form_profile(name: str) -> FormProfile:
    """Shortcut to the profile of a form in the global configuration."""
    return config.get_form_profile(name)
