"""Shared pytest fixtures for the service desk attachment tests."""

import pytest
from unittest.mock import AsyncMock, MagicMock
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

MB = 1024 * 1024


# ============================================================================
# Profile Fixtures
# ============================================================================

@pytest.fixture
def job_profile():
    """Job form profile with the stock document limits."""
    from config import FormProfile
    return FormProfile(
        name="job",
        endpoint="/jobs",
        http_method="PUT",
        attachments_key="attachments",
        upload_field="documents",
        delete_field="documents_to_delete",
    )


@pytest.fixture
def issue_profile():
    """System issue form profile accepting any image."""
    from config import FormProfile
    return FormProfile(
        name="system_issue",
        endpoint="/system-issues",
        http_method="PATCH",
        attachments_key="screenshots",
        upload_field="screenshots",
        delete_field="screenshots_to_delete",
        accepted_mime_types=["image/*"],
    )


@pytest.fixture
def small_profile(job_profile):
    """Job profile limited to three visible files."""
    return job_profile.model_copy(update={"max_files": 3})


# ============================================================================
# File Fixtures
# ============================================================================

@pytest.fixture
def make_file():
    """Factory for in-memory local files."""
    from services.attachment_manager import LocalFile

    def _make(name="photo.png", mime_type="image/png", size=1024):
        return LocalFile(name=name, mime_type=mime_type, size_bytes=size, content=b"x" * min(size, 64))

    return _make


@pytest.fixture
def img_file(make_file):
    return make_file("photo.png", "image/png", 2048)


@pytest.fixture
def pdf_file(make_file):
    return make_file("invoice.pdf", "application/pdf", 4096)


@pytest.fixture
def server_records():
    """Two attachments as the API returns them on a job record."""
    return [
        {
            "public_id": "a",
            "name": "serial-label.jpg",
            "type": "image/jpeg",
            "size": 1200,
            "url": "https://cdn.example.com/a.jpg",
        },
        {
            "_id": "b",
            "originalname": "quote.pdf",
            "mimetype": "application/pdf",
            "size": 5400,
            "url": "https://cdn.example.com/b.pdf",
        },
    ]


# ============================================================================
# Collaborator Fixtures
# ============================================================================

@pytest.fixture
def mock_submitter(server_records):
    """Async submitter echoing back a record with the server's attachment list."""
    submitter = MagicMock()
    submitter.get_record = AsyncMock(return_value={"_id": "job-1", "attachments": server_records})
    submitter.update_record = AsyncMock(return_value={"_id": "job-1", "attachments": server_records})
    return submitter
