"""Pydantic models describing RouterOS REST payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator


class RouterOSBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ErrorPayload(RouterOSBaseModel):
    """Body of a non-2xx response, e.g. ``{"error": 400, "message": "Bad Request", ...}``."""

    error: int | None = None
    message: str | None = None
    detail: str | None = None

    @field_validator("message", "detail", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    def summary(self) -> str | None:
        if self.message and self.detail:
            return f"{self.message}: {self.detail}"
        return self.message or self.detail


def parse_error_payload(body: bytes) -> ErrorPayload | None:
    if not body.strip():
        return None
    try:
        return ErrorPayload.model_validate_json(body)
    except ValidationError:
        return None
