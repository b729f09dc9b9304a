import base64
import json
from typing import Any, Optional

import httpx

from .model import PollOutcome

ERROR_FIELDS = ("detail", "message", "error")


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def first_message(data: Any, fields=ERROR_FIELDS) -> Optional[str]:
    """
    Return the first truthy value among `fields` of a JSON object, as text.
    """
    if not isinstance(data, dict):
        return None
    for field in fields:
        value = data.get(field)
        if value:
            return _as_text(value)
    return None


def extract_error_message(resp: httpx.Response, fallback: str) -> str:
    """
    Human readable message for a non-success provider response.
    Order: detail, message, error, raw body text, fallback.
    """
    try:
        message = first_message(resp.json())
    except ValueError:
        message = None
    if message:
        return message
    return resp.text or fallback


def poll_failure_message(outcome: PollOutcome) -> str:
    message = first_message(outcome.model_dump(), fields=("error", "message", "detail"))
    return message or f"generation failed: {outcome.status}"


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
