"""
Shared HTTP plumbing for the workflow clients.

Error envelopes from the API and transport failures are turned back into the
app.core.exceptions classes, so callers handle one family of errors whether
a failure happened on the server or on the wire.
"""

from typing import Any, Dict, Optional, Type

import httpx

from app.client.credentials import CredentialProvider
from app.core.exceptions import (
    ERRORS_BY_CODE,
    MedicalBillError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from app.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 60.0


class ApiClient:
    # Raised for failures the server did not classify
    default_error: Type[MedicalBillError] = PersistenceError

    def __init__(
        self,
        base_url: str,
        credentials: CredentialProvider,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.credentials = credentials
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _headers(self) -> Dict[str, str]:
        token = await self.credentials.get_token()
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _error_from_response(
        self, response: httpx.Response, error_cls: Type[MedicalBillError]
    ) -> MedicalBillError:
        try:
            body = response.json()
        except ValueError:
            body = None

        message = f"Request failed ({response.status_code})"
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                message = error.get("message") or message
                known = ERRORS_BY_CODE.get(error.get("code"))
                if known is not None:
                    return known(message)
            elif isinstance(body.get("detail"), str):
                message = body["detail"]

        if response.status_code == 422:
            return ValidationError(message)
        if response.status_code == 404:
            return NotFoundError(message)
        return error_cls(message)

    async def request(
        self,
        method: str,
        path: str,
        *,
        error_cls: Optional[Type[MedicalBillError]] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Send a request and return the envelope's ``data`` (None for message-only responses).

        Raises:
            MedicalBillError: the server's error, or ``error_cls`` for transport failures
        """
        error_cls = error_cls or self.default_error
        headers = await self._headers()
        try:
            response = await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Request failed", extra={"method": method, "path": path, "error": str(e)})
            raise error_cls("Network error. Check your connection and try again.") from e

        if response.is_error:
            raise self._error_from_response(response, error_cls)

        try:
            body = response.json()
        except ValueError as e:
            raise error_cls("Unexpected response from server") from e
        return body.get("data") if isinstance(body, dict) else body
