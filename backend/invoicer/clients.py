# Overview: HTTP clients for the remote collaborators (identity, export, email, webhook).

from __future__ import annotations

import atexit
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from flask import Flask, current_app

from .errors import RemoteUnavailableError


@dataclass(frozen=True)
class Principal:
    """Authenticated identity as reported by the identity service."""
    id: str
    email: Optional[str] = None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ExportResult:
    ok: bool
    content: bytes = b""
    content_type: str = "application/pdf"
    error: Optional[str] = None


class _HttpClient:
    """Shared lifecycle: one httpx.Client per process, rebuilt by init_app."""

    def __init__(self) -> None:
        self._client: Optional[httpx.Client] = None
        self._atexit_registered = False

    def _build(self, app: Flask, transport: Optional[httpx.BaseTransport], base_url: str = "") -> None:
        self.close()
        self._client = httpx.Client(
            base_url=base_url,
            timeout=app.config.get("REMOTE_TIMEOUT_SECONDS", 10),
            transport=transport,
        )
        if not self._atexit_registered:
            atexit.register(self.close)
            self._atexit_registered = True

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            raise RuntimeError(f"{type(self).__name__} used before init_app()")
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


class IdentityClient(_HttpClient):
    """
    Resolves bearer tokens into principals.

    Contract:
    - 200 -> Principal
    - 401/403 (or any other 4xx) -> None (token rejected)
    - transport failure or 5xx -> RemoteUnavailableError
    """

    def init_app(self, app: Flask, transport: Optional[httpx.BaseTransport] = None) -> None:
        self._api_key = app.config.get("IDENTITY_API_KEY", "")
        self._build(app, transport, base_url=app.config["IDENTITY_SERVICE_URL"].rstrip("/"))
        app.extensions["identity"] = self

    def fetch_principal(self, token: str) -> Optional[Principal]:
        headers = {"Authorization": f"Bearer {token}"}
        if self._api_key:
            headers["apikey"] = self._api_key

        try:
            response = self.client.get("/user", headers=headers)
        except httpx.HTTPError as exc:
            current_app.logger.warning("Identity service unreachable: %s", exc)
            raise RemoteUnavailableError("Identity service unavailable") from exc

        if response.status_code >= 500:
            current_app.logger.warning("Identity service returned %s", response.status_code)
            raise RemoteUnavailableError("Identity service unavailable")
        if response.status_code != 200:
            return None

        try:
            data = response.json()
        except ValueError as exc:
            current_app.logger.warning("Identity service returned a non-JSON body: %s", exc)
            raise RemoteUnavailableError("Identity service unavailable") from exc
        if not isinstance(data, dict) or not data.get("id"):
            return None
        return Principal(
            id=str(data["id"]),
            email=data.get("email"),
            metadata=data.get("user_metadata") or {},
        )


class DispatchClient(_HttpClient):
    """
    Export (PDF), email and webhook delivery.

    Failures never raise: callers get a failed result and decide what to
    roll back. Unconfigured URLs count as failures for export/email and as
    a silent skip for webhooks.
    """

    def init_app(self, app: Flask, transport: Optional[httpx.BaseTransport] = None) -> None:
        self._export_url = app.config.get("EXPORT_SERVICE_URL", "")
        self._email_url = app.config.get("EMAIL_SERVICE_URL", "")
        self._webhook_url = app.config.get("WEBHOOK_URL", "")
        self._build(app, transport)
        app.extensions["dispatcher"] = self

    def export_document(self, payload: dict[str, Any]) -> ExportResult:
        if not self._export_url:
            return ExportResult(ok=False, error="Export service not configured")
        try:
            response = self.client.post(self._export_url, json=payload)
        except httpx.HTTPError as exc:
            current_app.logger.warning("Export failed for %s: %s", payload.get("number"), exc)
            return ExportResult(ok=False, error=str(exc))
        if response.status_code != 200:
            current_app.logger.warning(
                "Export failed for %s: HTTP %s", payload.get("number"), response.status_code
            )
            return ExportResult(ok=False, error=f"HTTP {response.status_code}")
        return ExportResult(
            ok=True,
            content=response.content,
            content_type=response.headers.get("Content-Type", "application/pdf"),
        )

    def send_email(self, payload: dict[str, Any]) -> bool:
        if not self._email_url:
            current_app.logger.warning("Email service not configured")
            return False
        try:
            response = self.client.post(self._email_url, json=payload)
        except httpx.HTTPError as exc:
            current_app.logger.warning("Email to %s failed: %s", payload.get("to"), exc)
            return False
        if response.status_code >= 300:
            current_app.logger.warning("Email to %s failed: HTTP %s", payload.get("to"), response.status_code)
            return False
        return True

    def notify_webhook(self, event: str, payload: dict[str, Any]) -> bool:
        if not self._webhook_url:
            return False
        try:
            response = self.client.post(self._webhook_url, json={"event": event, "data": payload})
        except httpx.HTTPError as exc:
            current_app.logger.warning("Webhook %s failed: %s", event, exc)
            return False
        if response.status_code >= 300:
            current_app.logger.warning("Webhook %s failed: HTTP %s", event, response.status_code)
            return False
        return True
