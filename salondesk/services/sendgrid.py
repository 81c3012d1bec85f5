"""
SendGrid v3 REST client (httpx).

Only the three calls the delivery-tracking code needs: the auth probe,
message search by recipient (Email Activity API) and mail send.
Tests inject ``httpx.MockTransport`` through ``SENDGRID_TRANSPORT``.
"""
from typing import Any, Dict, List, Optional

import httpx
from flask import current_app

DEFAULT_API_BASE = "https://api.sendgrid.com"


class ProviderError(Exception):
    """A provider call failed (transport error, non-2xx, malformed body)."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class ProviderAuthError(ProviderError):
    """The API key was rejected or lacks the scopes we need."""


def _error_details(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"message": response.text}


def _first_error_message(details: Any) -> Optional[str]:
    if isinstance(details, dict):
        errors = details.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            return errors[0].get("message")
        return details.get("message")
    return None


class SendGridClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_API_BASE,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
        search_limit: int = 50,
    ):
        self.api_key = (api_key or "").strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.search_limit = search_limit

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    def async_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    def check_auth(self) -> Dict[str, Any]:
        """Lightweight authenticated call; raises ProviderAuthError on rejection."""
        try:
            with self._client() as http:
                response = http.get("/v3/user/profile")
        except httpx.HTTPError as exc:
            raise ProviderError(f"SendGrid unreachable: {exc}") from exc
        if response.status_code >= 400:
            details = _error_details(response)
            raise ProviderAuthError(
                "SendGrid API key is invalid or lacks required permissions",
                status_code=response.status_code,
                details=details,
            )
        try:
            return response.json()
        except ValueError:
            return {}

    async def search_messages(self, http: httpx.AsyncClient, recipient_email: str) -> List[Dict[str, Any]]:
        """Recent messages sent to one address; the API cannot look up by message id on this tier."""
        params = {"query": f'to_email="{recipient_email}"', "limit": str(self.search_limit)}
        try:
            response = await http.get("/v3/messages", params=params)
        except httpx.HTTPError as exc:
            raise ProviderError(f"message search failed: {exc}") from exc
        if response.status_code >= 400:
            details = _error_details(response)
            message = _first_error_message(details) or response.reason_phrase
            if response.status_code in (401, 403):
                raise ProviderAuthError(f"message search not permitted: {message}", response.status_code, details)
            raise ProviderError(f"message search rejected: {message}", response.status_code, details)
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError("message search returned a non-JSON body", response.status_code) from exc
        messages = data.get("messages") if isinstance(data, dict) else None
        if messages is None:
            return []
        if not isinstance(messages, list):
            raise ProviderError("message search returned a malformed body", response.status_code, data)
        return [m for m in messages if isinstance(m, dict)]

    def send_mail(self, payload: Dict[str, Any]) -> Optional[str]:
        """POST /v3/mail/send; returns the X-Message-Id header (may be None)."""
        try:
            with self._client() as http:
                response = http.post("/v3/mail/send", json=payload)
        except httpx.HTTPError as exc:
            raise ProviderError(f"SendGrid unreachable: {exc}") from exc
        if response.status_code >= 400:
            details = _error_details(response)
            message = _first_error_message(details) or response.reason_phrase
            raise ProviderError(f"SendGrid error: {message}", response.status_code, details)
        return response.headers.get("X-Message-Id")


def build_client(api_key: str) -> SendGridClient:
    cfg = current_app.config
    return SendGridClient(
        api_key,
        base_url=cfg.get("SENDGRID_API_BASE", DEFAULT_API_BASE),
        timeout=float(cfg.get("PROVIDER_TIMEOUT_SECONDS", 10)),
        transport=cfg.get("SENDGRID_TRANSPORT"),
        search_limit=int(cfg.get("MESSAGE_SEARCH_LIMIT", 50)),
    )
