"""Log sanitization module for preventing secret leakage.

Authentication and REST errors routinely echo back request fragments. This
module redacts the sensitive parts before anything is logged or printed:
- Client secrets and passwords
- Bearer tokens and raw JWTs
- SAS signatures
- Storage account keys
- Tenant/client IDs (partial masking)

Design Philosophy:
- Security first: err on side of over-redaction
- Pattern-based: not brittle keyword matching
- Fail-safe: if in doubt, mask it
"""

import re
from re import Pattern
from typing import Any


class LogSanitizer:
    """Sanitize sensitive data from logs and error messages.

    All methods are class methods and can be called without instantiation.
    """

    REDACTED = "[REDACTED]"
    MASKED = "****"

    # Order matters: more specific patterns come first
    SECRET_PATTERNS: dict[str, Pattern] = {
        "client_secret_assignment": re.compile(
            r'(client[_-]?secret["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "client_secret_env": re.compile(
            r"((?:AZURE_CLIENT_SECRET|OPSKIT_CLIENT_SECRET)[\"']?\s*[:=]\s*[\"']?)([^\s\"'&,\)]+)",
            re.IGNORECASE,
        ),
        "password": re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)', re.IGNORECASE),
        "authorization_bearer": re.compile(r"(Bearer\s+)([^\s\"',]+)", re.IGNORECASE),
        "access_token": re.compile(
            r'(access[_-]?token["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "refresh_token": re.compile(
            r'(refresh[_-]?token["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "sas_signature": re.compile(r"([?&]sig=)([^&\s\"']+)", re.IGNORECASE),
        "account_key": re.compile(r"(AccountKey=)([^;\s\"']+)", re.IGNORECASE),
    }

    # header.payload.signature, base64url segments
    JWT_PATTERN: Pattern = re.compile(r"\beyJ[\w-]+\.[\w-]+\.[\w-]*")

    UUID_PATTERN: Pattern = re.compile(
        r"\b([0-9a-f]{8})-([0-9a-f]{4})-([0-9a-f]{4})-([0-9a-f]{4})-([0-9a-f]{12})\b",
        re.IGNORECASE,
    )

    @classmethod
    def sanitize(cls, message: str) -> str:
        """Sanitize message by redacting sensitive patterns.

        Args:
            message: The message to sanitize

        Returns:
            Sanitized message with secrets replaced by [REDACTED]

        Examples:
            >>> LogSanitizer.sanitize("client_secret=abc123")
            'client_secret=[REDACTED]'
            >>> LogSanitizer.sanitize("Authorization: Bearer abc.def")
            'Authorization: Bearer [REDACTED]'
        """
        if not isinstance(message, str):
            message = str(message)

        result = cls.JWT_PATTERN.sub(cls.REDACTED, message)
        for pattern in cls.SECRET_PATTERNS.values():
            result = pattern.sub(r"\1" + cls.REDACTED, result)
        return result

    @classmethod
    def sanitize_ids(cls, message: str) -> str:
        """Partially mask UUIDs (tenant, client and subscription IDs).

        Examples:
            >>> LogSanitizer.sanitize_ids("tenant 12345678-1234-1234-1234-123456789abc")
            'tenant 12345678-****-****-****-************'
        """
        return cls.UUID_PATTERN.sub(lambda m: f"{m.group(1)}-****-****-****-************", message)

    @classmethod
    def mask_value(cls, value: str, visible: int = 4) -> str:
        """Mask a value, keeping only the first ``visible`` characters."""
        if not value:
            return ""
        if len(value) <= visible:
            return cls.MASKED
        return value[:visible] + cls.MASKED

    @classmethod
    def create_safe_error_message(cls, error: Exception, context: str = "") -> str:
        """Create error message with secrets sanitized.

        Examples:
            >>> err = ValueError("Auth failed with client_secret=abc123")
            >>> LogSanitizer.create_safe_error_message(err, "Authentication")
            'Authentication: Auth failed with client_secret=[REDACTED]'
        """
        sanitized_msg = cls.sanitize(str(error))
        if context:
            return f"{context}: {sanitized_msg}"
        return sanitized_msg

    @classmethod
    def sanitize_dict(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Sanitize dictionary values recursively.

        Values under sensitive keys are replaced wholesale; other strings are
        passed through ``sanitize``.
        """
        sensitive_keys = {
            "client_secret",
            "password",
            "access_token",
            "refresh_token",
            "token",
            "secret",
            "authorization",
            "account_key",
            "sas",
        }

        result: dict[str, Any] = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if any(word in key_lower for word in sensitive_keys):
                result[key] = cls.REDACTED
            elif isinstance(value, dict):
                result[key] = cls.sanitize_dict(value)
            elif isinstance(value, str):
                result[key] = cls.sanitize(value)
            elif isinstance(value, (list, tuple)):
                result[key] = type(value)(
                    cls.sanitize_dict(item)
                    if isinstance(item, dict)
                    else cls.sanitize(item)
                    if isinstance(item, str)
                    else item
                    for item in value
                )
            else:
                result[key] = value
        return result

    @classmethod
    def sanitize_exception(cls, exc: Exception) -> str:
        """Sanitize exception message."""
        return cls.sanitize(str(exc))
