"""
Asynchronous Service Desk Client
================================

Async client used by edit form sessions to load records and submit
attachment change-sets without blocking the event loop.

For synchronous usage, use ServiceDeskClient instead.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Dict, Mapping, Optional

import aiohttp
from dotenv import load_dotenv

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


class AsyncServiceDeskClient:
    """
    Asynchronous client for the service desk API.

    Usage:
        async with AsyncServiceDeskClient() as client:
            job = await client.get_record(profile, job_id)

    Or without context manager:
        client = AsyncServiceDeskClient()
        await client.connect()
        try:
            await client.update_record(profile, job_id, fields, change_set)
        finally:
            await client.close()
    """

    DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=60, connect=10)

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
    ):
        """
        Initialize the async client.

        Args:
            base_url: API base URL (default: SERVICEDESK_BASE_URL env or http://localhost:5000)
            api_token: Bearer token (default: SERVICEDESK_API_TOKEN env)
            timeout: Request timeout configuration
        """
        self.base_url = (base_url or os.getenv(BASE_URL_ENV, DEFAULT_BASE_URL)).rstrip("/")
        self.api_token = api_token or os.getenv(API_TOKEN_ENV)
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> None:
        """Initialize the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "AsyncServiceDeskClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def session(self) -> aiohttp.ClientSession:
        """Get the active session, raising if not connected."""
        if self._session is None or self._session.closed:
            raise RuntimeError(
                "Client not connected. Use 'async with AsyncServiceDeskClient()' or call connect()"
            )
        return self._session

    def _headers(self) -> Dict[str, str]:
        """Build request headers; aiohttp sets the multipart Content-Type itself."""
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    async def _send(self, method: str, endpoint: str, default_message: str, **kwargs) -> Dict[str, Any]:
        """Send a request and return the unwrapped record, mapping failures to ServiceDeskClientError."""
        url = f"{self.base_url}{endpoint}"
        kwargs.setdefault("headers", self._headers())
        try:
            async with self.session.request(method, url, **kwargs) as response:
                text = await response.text()
                status = response.status
        except aiohttp.ClientConnectorError as e:
            raise ServiceDeskClientError(
                f"Cannot connect to the service desk API at {self.base_url}."
            ) from e
        except asyncio.TimeoutError as e:
            raise ServiceDeskClientError(f"Request to {endpoint} timed out") from e
        except aiohttp.ClientError as e:
            raise ServiceDeskClientError(f"Request failed: {e}") from e

        body = parse_error_body(text)
        if not is_success_status(status):
            raise ServiceDeskClientError(
                extract_error_message(body, default_message),
                status_code=status,
                details=body if isinstance(body, dict) else {},
            )
        try:
            return unwrap_record(body)
        except ValueError as e:
            raise ServiceDeskClientError(
                f"Unexpected response from the service desk API: {e}",
                status_code=status,
            ) from e

    # =========================================================================
    # Records
    # =========================================================================

    async def get_record(self, profile, record_id) -> Dict[str, Any]:
        """Fetch the parent record an edit form is opened for."""
        return await self._send(
            "GET",
            resolve_endpoint(profile, record_id),
            f"Failed to load {profile.name.replace('_', ' ')}",
        )

    async def update_record(
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
        data = aiohttp.FormData()
        for key, value in build_form_fields(profile, fields, change_set):
            data.add_field(key, value)
        file_parts = build_file_parts(profile, change_set)
        for field, filename, payload, content_type in file_parts:
            data.add_field(field, payload, filename=filename, content_type=content_type)

        logger.info(
            "Submitting %s %s (%d uploads, %d deletions)",
            profile.name,
            record_id,
            len(file_parts),
            len(change_set.ids_to_delete) if change_set is not None else 0,
        )
        return await self._send(
            profile.http_method,
            resolve_endpoint(profile, record_id),
            f"Failed to update {profile.name.replace('_', ' ')}",
            data=data,
        )
