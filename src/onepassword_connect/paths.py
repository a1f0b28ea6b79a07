"""URL path helpers for Connect API resources."""

from urllib.parse import quote, urlencode

API_PREFIX = "/v1"


def escape_segment(value: str) -> str:
    """Percent-encode one path segment, keeping only RFC 3986 unreserved chars."""
    return quote(value, safe="")


def require_id(value: str, label: str) -> str:
    """Reject empty or whitespace-only identifiers before any I/O."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{label} cannot be empty or whitespace.")
    return value


def build_path(*segments: str, prefix: str = API_PREFIX) -> str:
    """Join escaped segments under ``prefix``: ``build_path("vaults", vid)``."""
    escaped = "/".join(escape_segment(segment) for segment in segments)
    return f"{prefix}/{escaped}" if escaped else prefix


def with_query(path: str, params: dict[str, object | None]) -> str:
    """Append a ``%20``-escaped query string, skipping ``None`` values."""
    present = {key: value for key, value in params.items() if value is not None}
    if not present:
        return path
    return f"{path}?{urlencode(present, quote_via=quote, safe='')}"
