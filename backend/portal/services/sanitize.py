"""Input sanitisation helpers."""

import re

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
}

_SQL_INJECTION_PATTERNS = [
    re.compile(
        r"\b(SELECT|INSERT|UPDATE|DELETE|DROP|ALTER|CREATE|EXEC|UNION)\b.*\b(FROM|INTO|TABLE|SET|WHERE)\b",
        re.IGNORECASE,
    ),
    re.compile(r"'.*--"),
    re.compile(r";\s*(DROP|ALTER|DELETE|INSERT|UPDATE)", re.IGNORECASE),
    re.compile(r"\bOR\b\s+\d+\s*=\s*\d+", re.IGNORECASE),
]


def escape_html(value: str) -> str:
    """Escape HTML special characters."""
    return re.sub(r"[&<>\"']", lambda m: _HTML_ESCAPES[m.group(0)], value)


def sanitize_string(value: str) -> str:
    """Remove null bytes and surrounding whitespace."""
    return value.replace("\x00", "").strip()


def sanitize_email(value: str) -> str:
    """Normalise an email address for storage and lookup."""
    return sanitize_string(value).lower()


def sanitize_filename(filename: str) -> str:
    """Reduce a user-supplied filename to a safe single path component.

    Separators are removed before ``..`` pairs so that a name such as
    ``a./.b`` cannot collapse into a new traversal sequence. The result is
    stable under repeated application.

    Examples:
        >>> sanitize_filename("../../etc/passwd")
        'etcpasswd'
        >>> sanitize_filename("file name (1).txt")
        'file_name_1_.txt'
    """
    name = filename.replace("\x00", "")
    name = re.sub(r"[/\\]", "", name)
    name = name.replace("..", "")
    name = re.sub(r"[^a-zA-Z0-9._-]", "_", name)
    name = re.sub(r"_{2,}", "_", name)
    name = name.lstrip(".")
    return name.strip()


def has_sql_injection_patterns(value: str) -> bool:
    """Flag strings that look like SQL injection attempts.

    Queries are always parameterised; this only feeds audit details.
    """
    return any(pattern.search(value) for pattern in _SQL_INJECTION_PATTERNS)
