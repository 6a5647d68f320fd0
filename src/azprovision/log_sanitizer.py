"""Log sanitization for provisioning output.

Provider error messages, request bodies and settings dumps can all carry
secret material: the service principal secret, the VM admin password, bearer
tokens. Everything that reaches a log line or the console goes through here.

Design:
- Pattern-based redaction of ``key=value`` / ``key: value`` forms
- Key-based redaction for request bodies and other dictionaries
- Err on the side of over-redaction
"""

import re
from re import Pattern
from typing import Any


class LogSanitizer:
    """Sanitize sensitive data from logs and error messages.

    All methods are class methods; no instantiation needed.
    """

    REDACTED = "[REDACTED]"

    # Order matters: more specific patterns first
    SECRET_PATTERNS: dict[str, Pattern] = {
        "client_secret_assignment": re.compile(
            r'(client[_-]?secret["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "application_secret_env": re.compile(
            r"((?:APPLICATION_SECRET|AZURE_CLIENT_SECRET|VM_ADMIN_PASSWORD)[\"']?\s*[:=]\s*[\"']?)([^\s\"'&,\)]+)",
            re.IGNORECASE,
        ),
        "admin_password": re.compile(
            r'(admin[_-]?password["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)', re.IGNORECASE
        ),
        "password": re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)', re.IGNORECASE),
        "authorization_bearer": re.compile(r"(Authorization:\s*Bearer\s+)([^\s]+)", re.IGNORECASE),
        "access_token": re.compile(
            r'(access[_-]?token["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "secret_phrase": re.compile(
            r"(with secret:\s*|for secret:\s*|secret:\s*)([^\s,\)]+)", re.IGNORECASE
        ),
    }

    SENSITIVE_KEY_WORDS = ("secret", "password", "token", "credential", "authorization")

    @classmethod
    def sanitize(cls, message: str) -> str:
        """Redact secrets from a free-form message.

        Examples:
            >>> LogSanitizer.sanitize("client_secret=abc123")
            'client_secret=[REDACTED]'
            >>> LogSanitizer.sanitize("adminPassword: hunter2")
            'adminPassword: [REDACTED]'
        """
        if not isinstance(message, str):
            message = str(message)

        result = message
        for pattern in cls.SECRET_PATTERNS.values():
            result = pattern.sub(r"\1" + cls.REDACTED, result)
        return result

    @classmethod
    def is_sensitive_key(cls, key: str) -> bool:
        """True if a dictionary key or variable name names secret material."""
        normalized = key.lower().replace("-", "_")
        return any(word in normalized for word in cls.SENSITIVE_KEY_WORDS)

    @classmethod
    def sanitize_dict(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Recursively redact a request body or other nested mapping."""
        result: dict[str, Any] = {}
        for key, value in data.items():
            if cls.is_sensitive_key(str(key)):
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
    def create_safe_error_message(cls, error: BaseException, context: str = "") -> str:
        """Sanitized ``str(error)``, optionally prefixed with context.

        Examples:
            >>> err = ValueError("login failed with client_secret=abc123")
            >>> LogSanitizer.create_safe_error_message(err, "Authentication")
            'Authentication: login failed with client_secret=[REDACTED]'
        """
        sanitized_msg = cls.sanitize(str(error))
        if context:
            return f"{context}: {sanitized_msg}"
        return sanitized_msg

    @classmethod
    def sanitize_exception(cls, exc: BaseException) -> str:
        """Sanitized exception message."""
        return cls.sanitize(str(exc))
