"""Request descriptors, call context and wire models shared by the client."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class ApiRequest:
    """
    One call against the accounting API.

    Built by the entity layer and handed to the dispatcher unchanged.
    """

    method: str
    """HTTP method (GET, POST, ...)."""

    path: str
    """Path relative to ``/v3/company/<realmId>/``, e.g. ``customer/42``."""

    payload: Any = None
    """JSON-serializable body, or None for no body."""

    params: Mapping[str, str] = field(default_factory=dict)
    """Extra query parameters; ``minorversion`` is added by the dispatcher."""

    response_model: type[BaseModel] | None = None
    """Pydantic model to validate the body into; raw JSON when None."""

    @classmethod
    def get(cls, path: str, params: Mapping[str, str] | None = None, **kwargs: Any) -> ApiRequest:
        return cls("GET", path, params=dict(params or {}), **kwargs)

    @classmethod
    def post(
        cls,
        path: str,
        payload: Any = None,
        params: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> ApiRequest:
        return cls("POST", path, payload=payload, params=dict(params or {}), **kwargs)


class BearerToken(BaseModel):
    """
    OAuth2 bearer token as returned by the Intuit token endpoint.

    Issued and refreshed elsewhere; the client only reads ``access_token``.
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
    id_token: str | None = None
    expires_in: int | None = None
    x_refresh_token_expires_in: int | None = None
    issued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def expires_at(self) -> datetime | None:
        if self.expires_in is None:
            return None
        return self.issued_at + timedelta(seconds=self.expires_in)

    def is_expired(self, leeway_seconds: float = 0.0) -> bool:
        """Whether the access token is past (or within ``leeway_seconds`` of) expiry."""
        expires_at = self.expires_at
        if expires_at is None:
            return False
        return datetime.now(timezone.utc) + timedelta(seconds=leeway_seconds) >= expires_at

    def __repr__(self) -> str:
        return f"BearerToken(token_type={self.token_type!r}, expires_at={self.expires_at})"


@dataclass
class RequestContext:
    """Per-call context: target realm, credential and cancellation signal."""

    realm_id: str
    token: BearerToken | str
    cancel_event: asyncio.Event | None = None
    blocking: bool | None = None
    """Wait out local quota exhaustion instead of failing; None uses the client default."""

    @property
    def access_token(self) -> str:
        if isinstance(self.token, BearerToken):
            return self.token.access_token
        return self.token

    def __repr__(self) -> str:
        return f"RequestContext(realm_id={self.realm_id!r}, blocking={self.blocking})"


class FaultError(BaseModel):
    """One entry of a fault body's ``Error`` array."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    message: str = Field(default="", alias="Message")
    detail: str = Field(default="", alias="Detail")
    code: str = ""
    element: str = ""


class Fault(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    errors: list[FaultError] = Field(default_factory=list, alias="Error")
    type: str = ""


class FaultResponse(BaseModel):
    """Structured error body returned on non-success status codes."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    fault: Fault = Field(alias="Fault")
    time: str | None = None
