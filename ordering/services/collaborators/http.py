"""
Service-to-service HTTP client with error classification and retry logic.

This module provides the httpx-based client shared by every HTTP
collaborator. It authenticates with the internal service token, applies a
per-request timeout, retries transport failures and 5xx responses with
exponential backoff, and classifies failures into
``CollaboratorUnavailableError`` and ``CollaboratorRejectedError``.
"""

import asyncio
from typing import Any, Optional

import httpx

from ordering.core.logging import get_logger
from ordering.services.collaborators.exceptions import (
    CollaboratorRejectedError,
    CollaboratorUnavailableError,
)

logger = get_logger(__name__)


class ServiceHttpClient:
    """
    Async HTTP client bound to one internal service.

    Attributes:
        service: Logical service name used in logs and errors
        base_url: Base URL every path is appended to
        max_retries: Retries after the first attempt for retryable failures
    """

    def __init__(
        self,
        service: str,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        max_retries: int = 2,
        initial_backoff: float = 0.5,
        max_backoff: float = 8.0,
        backoff_multiplier: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            service: Logical service name (e.g. "catalog-service")
            base_url: Service base URL
            token: Optional bearer token for service-to-service auth
            timeout: Per-request timeout in seconds
            max_retries: Maximum number of retry attempts
            initial_backoff: Initial backoff delay in seconds
            max_backoff: Maximum backoff delay in seconds
            backoff_multiplier: Backoff multiplier for exponential backoff
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.service = service
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.backoff_multiplier = backoff_multiplier

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff delay for a 0-indexed retry attempt."""
        return min(
            self.initial_backoff * (self.backoff_multiplier**attempt),
            self.max_backoff,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        allow_not_found: bool = False,
        authenticated: bool = True,
    ) -> Any:
        """
        Execute a request with retry and error classification.

        Args:
            method: HTTP method
            path: Path relative to the service base URL
            json: Optional JSON body
            params: Optional query parameters (None values are dropped)
            headers: Extra headers for this request
            allow_not_found: Return None on 404 instead of raising
            authenticated: Send the service token; False strips the
                Authorization header for open internal endpoints

        Returns:
            Decoded JSON body, or None for empty bodies and allowed 404s

        Raises:
            CollaboratorUnavailableError: Transport failure, timeout or 5xx
                after all retries
            CollaboratorRejectedError: 4xx response
        """
        query = {k: v for k, v in (params or {}).items() if v is not None}
        request_headers = dict(headers or {})

        last_error: Optional[Exception] = None
        last_status: Optional[int] = None

        for attempt in range(self.max_retries + 1):
            try:
                request = self._client.build_request(
                    method,
                    path,
                    json=json,
                    params=query or None,
                    headers=request_headers or None,
                )
                if not authenticated:
                    request.headers.pop("Authorization", None)
                response = await self._client.send(request)
            except httpx.TransportError as e:
                last_error = e
                last_status = None
                logger.warning(
                    "Collaborator transport error",
                    service=self.service,
                    method=method,
                    path=path,
                    attempt=attempt,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                if response.status_code >= 500:
                    last_error = None
                    last_status = response.status_code
                    logger.warning(
                        "Collaborator server error",
                        service=self.service,
                        method=method,
                        path=path,
                        attempt=attempt,
                        status_code=response.status_code,
                    )
                elif response.status_code == 404 and allow_not_found:
                    return None
                elif response.status_code >= 400:
                    logger.info(
                        "Collaborator rejected request",
                        service=self.service,
                        method=method,
                        path=path,
                        status_code=response.status_code,
                    )
                    raise CollaboratorRejectedError(
                        f"{self.service} rejected {method} {path}",
                        service=self.service,
                        status_code=response.status_code,
                        body=response.text[:500],
                    )
                else:
                    if attempt > 0:
                        logger.info(
                            "Collaborator call succeeded after retry",
                            service=self.service,
                            path=path,
                            attempt=attempt,
                        )
                    return self._decode(response)

            if attempt < self.max_retries:
                await asyncio.sleep(self._calculate_backoff(attempt))

        raise CollaboratorUnavailableError(
            f"{self.service} unavailable for {method} {path}",
            service=self.service,
            status_code=last_status,
            error=str(last_error) if last_error else None,
            attempts=self.max_retries + 1,
        ) from last_error

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.request("POST", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()
