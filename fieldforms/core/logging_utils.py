import re
from typing import Any, Dict, Optional
from fastapi import Request
from fieldforms.config import settings

MASK = "***MASKED***"

_CREDENTIAL_TERMS = ("api_key", "apikey", "x-api-key", "api-key", "token", "authorization",
                     "password", "secret", "private_key")
_COORDINATE_KEYS = ("latitude", "longitude", "lat", "lng", "lon")


def _mask_email(value: str) -> str:
    local, sep, domain = value.partition("@")
    if not sep or len(local) <= 3:
        return MASK
    return local[:3] + "***@" + domain


def _mask_phone(value: str) -> str:
    digits = re.sub(r"\D", "", value)
    if len(digits) <= 4:
        return MASK
    return "*" * (len(digits) - 4) + digits[-4:]


def mask_sensitive_data(data: Any, mask_string: str = MASK) -> Any:
    """
    Recursively mask credentials and agent contact data.

    Emails keep their first three characters and domain, phone numbers
    their last four digits; coordinates are rounded to one decimal. Request
    ids are never masked.
    """
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            key_lower = str(key).lower()

            if key_lower in ("requestid", "request_id"):
                masked[key] = value
            elif any(term in key_lower for term in _CREDENTIAL_TERMS):
                masked[key] = mask_string
            elif "email" in key_lower and isinstance(value, str):
                masked[key] = _mask_email(value)
            elif "phone" in key_lower and isinstance(value, str):
                masked[key] = _mask_phone(value)
            elif key_lower in _COORDINATE_KEYS and isinstance(value, (int, float)):
                masked[key] = round(float(value), 1)
            else:
                masked[key] = mask_sensitive_data(value, mask_string)
        return masked

    if isinstance(data, list):
        return [mask_sensitive_data(item, mask_string) for item in data]

    if isinstance(data, str):
        # Long opaque strings are most likely keys; UUIDs contain hyphens and pass through
        if len(data) > 32 and re.match(r'^[A-Za-z0-9_]+$', data):
            return mask_string
        return data

    return data


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Mask credential-bearing HTTP headers."""
    sensitive_headers = ("authorization", "x-api-key", "api-key", "cookie", "set-cookie")
    return {
        key: MASK if any(s in key.lower() for s in sensitive_headers) else value
        for key, value in headers.items()
    }


def get_request_id(request: Optional[Request]) -> Optional[str]:
    """Request id assigned by the logging middleware, if any."""
    if request is not None and hasattr(request.state, "request_id"):
        return request.state.request_id
    return None


def sanitize_log_message(message: str, **kwargs: Any) -> str:
    """
    Append masked context to a log message.

    ``RequestID`` (or ``request_id``) is appended last so RequestIDFormatter
    can lift it into its own column.

    Example:
        logger.info(sanitize_log_message("Submission created", SubmissionID=12, RequestID=rid))
    """
    request_id = kwargs.pop('RequestID', None) or kwargs.pop('request_id', None)

    if kwargs:
        context = mask_sensitive_data(kwargs) if settings.LOG_MASK_SENSITIVE else kwargs
        parts = []
        for key, value in context.items():
            if isinstance(value, (dict, list)):
                parts.append(f"{key}: {str(value)[:200]}")
            else:
                parts.append(f"{key}: {value}")
        message = f"{message} | {' | '.join(parts)}"

    if request_id:
        message = f"{message} | RequestID: {request_id}"

    return message
