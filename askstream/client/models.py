"""
Wire models for the ask endpoint.

This module provides the request payload and the decoded stream event:
- AskRequest: immutable `{question, sessionId}` body
- StreamEvent: known optional fields plus an open extension map
- ClientConfig: service origin, endpoint, timeout and credentials
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ModelWrapValidatorHandler,
    PrivateAttr,
    ValidatorFunctionWrapHandler,
    field_validator,
    model_validator,
)


class AskRequest(BaseModel):
    """Request body for one logical ask."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    question: str = Field(min_length=1)
    session_id: str = Field(alias="sessionId", min_length=1)

    def to_payload(self) -> dict[str, str]:
        """Serialize with the camelCase keys the service expects."""
        return self.model_dump(by_alias=True)


class StreamEvent(BaseModel):
    """
    One decoded `data:` record.

    Any JSON object is accepted. ``delta`` is read only when it holds a
    string and ``finish`` only when it is literally ``true``; every other
    field is kept in ``extra`` and the whole record is forwarded untouched.
    """
    model_config = ConfigDict(frozen=True, extra="allow")

    delta: str | None = None
    finish: bool = False

    _raw: dict[str, Any] | None = PrivateAttr(default=None)

    @field_validator("delta", mode="wrap")
    @classmethod
    def _lenient_delta(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> str | None:
        return value if isinstance(value, str) else None

    @field_validator("finish", mode="wrap")
    @classmethod
    def _lenient_finish(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> bool:
        return value is True

    @model_validator(mode="wrap")
    @classmethod
    def _keep_raw(cls, data: Any, handler: ModelWrapValidatorHandler[StreamEvent]) -> StreamEvent:
        event = handler(data)
        if isinstance(data, dict):
            event._raw = dict(data)
        return event

    @property
    def extra(self) -> dict[str, Any]:
        """Fields this client does not interpret."""
        return dict(self.model_extra or {})

    def to_dict(self) -> dict[str, Any]:
        """Return the record as received."""
        if self._raw is not None:
            return dict(self._raw)
        return self.model_dump(exclude_unset=True)


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings for the inference service."""
    base_url: str = "http://localhost:8080"
    endpoint: str = "/api/ask"
    timeout: float = 60.0
    auth_token: str | None = None
    api_key: str | None = None
    api_key_header: str = "X-API-Key"

    def headers(self) -> dict[str, str]:
        """Default headers for every attempt."""
        headers = {"Accept": "text/event-stream"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        if self.api_key:
            headers[self.api_key_header] = self.api_key
        return headers
