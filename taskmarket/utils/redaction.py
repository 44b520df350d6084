"""Masking of sensitive header and body fields before they reach the logs."""

from __future__ import annotations

from typing import Any, Mapping, Optional

REDACTED = "[REDACTED]"

# Transport layers lower-case header names, so these are matched lower-cased.
SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "x-api-key"})

# Body keys are matched after dropping "_" / "-" and lower-casing, so
# confirmPassword, confirm_password and confirm-password are the same field.
SENSITIVE_BODY_FIELDS = frozenset(
    {
        "password",
        "confirmpassword",
        "passwordconfirmation",
        "newpassword",
        "currentpassword",
        "oldpassword",
        "token",
        "accesstoken",
        "refreshtoken",
        "idtoken",
        "cardnumber",
        "cvv",
        "cvc",
    }
)


def _normalize_field(key: Any) -> str:
    return str(key).replace("_", "").replace("-", "").lower()


def is_sensitive_header(name: Any) -> bool:
    return str(name).lower() in SENSITIVE_HEADERS


def is_sensitive_field(name: Any) -> bool:
    return _normalize_field(name) in SENSITIVE_BODY_FIELDS


def redact_headers(headers: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Return a copy of ``headers`` with sensitive values masked.

    A missing mapping yields an empty dict.
    """
    if not headers:
        return {}
    return {
        key: REDACTED if is_sensitive_header(key) else value
        for key, value in headers.items()
    }


def redact_body(body: Any) -> Any:
    """Return a shallow copy of a mapping body with sensitive fields masked.

    ``None`` and non-mapping bodies (lists, strings, raw bytes) are returned
    as they are.
    """
    if body is None or not isinstance(body, Mapping):
        return body
    return {
        key: REDACTED if is_sensitive_field(key) else value
        for key, value in body.items()
    }
