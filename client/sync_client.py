"""
Synchronous Service Desk Client
===============================

Blocking client for scripts and tools that edit service desk records.
For async usage, use AsyncServiceDeskClient instead.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Mapping, Optional

import requests
from dotenv import load_dotenv
from requests import exceptions as requests_exceptions

# Load environment variables
load_dotenv()

from . import ServiceDeskClientError
from ._common import (
    API_TOKEN_ENV,
    BASE_URL_ENV,
    DEFAULT_BASE_URL,
    build_file_parts,
    build_form_fields,
    extract_error_message,
    is_success_status,
    parse_error_body,
    resolve_endpoint,
    unwrap_record,
)

logger = logging.getLogger(__name__)


class ServiceDeskClient:
    """
    Synchronous client for the service desk API.

    Usage:
        client = ServiceDeskClient()
        job = client.get_record(profile, job_id)
        updated = client.update_record(profile, job_id, {"status": "Closed"}, change_set)
    """

    DEFAULT_TIMEOUT = (10, 60)  # (connect, read)

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: tuple = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API base URL (default: SERVICEDESK_BASE_URL env or http://localhost:5000)
            api_token: Bearer token (default: SERVICEDESK_API_TOKEN env)
            timeout: Request timeout tuple (connect_timeout, read_timeout)
            session: Optional requests.Session to reuse connections
        """
        self.base_url = (base_url or os.getenv(BASE_URL_ENV, DEFAULT_BASE_URL)).rstrip("/")
        self.api_token = api_token or os.getenv(API_TOKEN_ENV)
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self, json_body: bool = False) -> Dict[str, str]:
        """Build request headers; multipart bodies get their Content-Type from requests."""
        headers: Dict[str, str] = {"Accept": "application/json"}
        if json_body:
            headers["Content-Type"] = "application/json"
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """Make an HTTP request with error handling."""
        url = f"{self.base_url}{endpoint}"
        kwargs.setdefault("timeout", self.timeout)
        kwargs.setdefault("headers", self._headers())

        try:
            return self.session.request(method, url, **kwargs)
        except requests_exceptions.ConnectionError as e:
            raise ServiceDeskClientError(
                f"Cannot connect to the service desk API at {self.base_url}."
            ) from e
        except requests_exceptions.Timeout as e:
            raise ServiceDeskClientError(f"Request to {endpoint} timed out after {self.timeout}s") from e
        except requests_exceptions.RequestException as e:
            raise ServiceDeskClientError(f"Request failed: {e}") from e

    @staticmethod
    def _raise_for_status(response: requests.Response, default_message: str) -> None:
        if is_success_status(response.status_code):
            return
        body = parse_error_body(response.text)
        raise ServiceDeskClientError(
            extract_error_message(body, default_message),
            status_code=response.status_code,
            details=body if isinstance(body, dict) else {},
        )

    @staticmethod
    def _record_from(response: requests.Response) -> Dict[str, Any]:
        try:
            return unwrap_record(response.json())
        except ValueError as e:
            raise ServiceDeskClientError(
                f"Unexpected response from the service desk API: {e}",
                status_code=response.status_code,
            ) from e

    # =========================================================================
    # Records
    # =========================================================================

    def get_record(self, profile, record_id) -> Dict[str, Any]:
        """Fetch the parent record an edit form is opened for."""
        response = self._request("GET", resolve_endpoint(profile, record_id))
        self._raise_for_status(response, f"Failed to load {profile.name.replace('_', ' ')}")
        return self._record_from(response)

    def update_record(
        self,
        profile,
        record_id,
        fields: Optional[Mapping[str, Any]],
        change_set,
    ) -> Dict[str, Any]:
        """
        Submit an edit form as multipart/form-data.

        Args:
            profile: FormProfile of the form being submitted
            record_id: Identifier of the parent record
            fields: Other form fields (empty values are dropped)
            change_set: ChangeSet with files to upload and server ids to delete

        Returns:
            The updated parent record
        """
        data = build_form_fields(profile, fields, change_set)
        files = [
            (field, (filename, payload, content_type))
            for field, filename, payload, content_type in build_file_parts(profile, change_set)
        ]
        logger.info(
            "Submitting %s %s (%d uploads, %d deletions)",
            profile.name,
            record_id,
            len(files),
            len(change_set.ids_to_delete) if change_set is not None else 0,
        )
        response = self._request(
            profile.http_method,
            resolve_endpoint(profile, record_id),
            data=data,
            files=files or None,
        )
        self._raise_for_status(response, f"Failed to update {profile.name.replace('_', ' ')}")
        return self._record_from(response)
