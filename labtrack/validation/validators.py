# labtrack/validation/validators.py
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from labtrack.commons.errors import EnvelopeError


class SuccessEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str

    @field_validator("message")
    @classmethod
    def _is_success(cls, v: str):
        if v != "success":
            raise ValueError(f"message must be 'success', got {v!r}")
        return v


class StatusEnvelope(BaseModel):
    """Shape used by the walk-in tax-invoice list: {status: 200, data: [...]}."""

    model_config = ConfigDict(extra="allow")

    status: int
    data: List[Dict[str, Any]] = []

    @field_validator("status")
    @classmethod
    def _is_ok(cls, v: int):
        if v != 200:
            raise ValueError(f"status must be 200, got {v}")
        return v


class AttachmentPayload(BaseModel):
    """Minimum a returned attachment must carry to be shown."""

    model_config = ConfigDict(extra="allow")

    id: Any
    fileURL: Optional[str] = None
    fileName: Optional[str] = None


def validate_envelope_or_raise(payload: Any) -> Dict[str, Any]:
    """Return the payload when it is a success envelope; raise EnvelopeError otherwise."""
    if not isinstance(payload, dict):
        raise EnvelopeError(f"Expected a JSON object, got {type(payload).__name__}", payload)
    try:
        SuccessEnvelope.model_validate(payload)
    except ValidationError as ve:
        raise EnvelopeError(f"Non-success envelope: {ve.errors()[0]['msg']}", payload) from ve
    return payload


def validate_status_envelope_or_raise(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict):
        raise EnvelopeError(f"Expected a JSON object, got {type(payload).__name__}", payload)
    try:
        env = StatusEnvelope.model_validate(payload)
    except ValidationError as ve:
        raise EnvelopeError(f"Non-success envelope: {ve.errors()[0]['msg']}", payload) from ve
    return env.data


def collect_returned_attachments(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Attachments echoed by the upload endpoint (`attachments` list or one `attachment`)."""
    raw = payload.get("attachments")
    if raw is None:
        raw = payload.get("attachment")
    if isinstance(raw, dict):
        raw = [raw]
    out = []
    for item in raw or []:
        try:
            AttachmentPayload.model_validate(item)
        except ValidationError:
            continue
        out.append(item)
    return out
