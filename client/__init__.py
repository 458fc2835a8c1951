"""
Service Desk Client SDK
=======================

Python client for the parts of the service desk API the attachment forms
talk to: fetching a parent record and submitting an edit with its
attachment change-set.

Quick Start:
    from client import ServiceDeskClient
    from config import get_form_profile

    client = ServiceDeskClient(api_token="...")
    job = client.get_record(get_form_profile("job"), "64f0c2...")

    # Async usage
    from client import AsyncServiceDeskClient

    async with AsyncServiceDeskClient() as client:
        updated = await client.update_record(profile, job_id, fields, change_set)
"""

from typing import Any, Dict, Optional


class ServiceDeskClientError(Exception):
    """Exception raised for service desk API errors.

    ``str(error)`` is safe to show to the user as a form-level message.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}


from .sync_client import ServiceDeskClient
from .async_client import AsyncServiceDeskClient

__all__ = [
    "ServiceDeskClient",
    "AsyncServiceDeskClient",
    "ServiceDeskClientError",
]

__version__ = "1.0.0"
