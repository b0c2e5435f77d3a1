"""URL helpers for building service metadata requests."""

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def with_query(url: str, **params) -> str:
    """
    Append query parameters to a URL, keeping any existing query.

    Args:
        url: Base URL
        **params: Parameters to append (None values are skipped)

    Returns:
        URL with the parameters appended
    """
    query = urlencode({k: v for k, v in params.items() if v is not None}, safe=":,/")
    if not query:
        return url
    separator = "&" if "?" in url else "?"
    if url.endswith(("?", "&")):
        separator = ""
    return f"{url}{separator}{query}"


def join_path(base: str, *parts: str) -> str:
    """
    Join path segments onto a URL with single slashes.

    Args:
        base: Base URL (query string, if any, is dropped)
        *parts: Path segments

    Returns:
        Joined URL
    """
    url = split_query(base)[0].rstrip("/")
    for part in parts:
        part = str(part).strip("/")
        if part:
            url = f"{url}/{part}"
    return url


def split_query(url: str) -> tuple[str, dict[str, str]]:
    """
    Split a URL into its base and query parameters.

    Returns:
        Tuple of (URL without query or fragment, query parameters)
    """
    parts = urlsplit(url)
    base = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    return base, dict(parse_qsl(parts.query, keep_blank_values=True))


def file_name(url: str) -> str:
    """Return the last path segment of a URL."""
    path = urlsplit(url).path.rstrip("/")
    return path.rsplit("/", 1)[-1]


def parent_url(url: str) -> str:
    """Return the URL of the directory holding the last path segment, with a trailing slash."""
    base = split_query(url)[0].rstrip("/")
    return base.rsplit("/", 1)[0] + "/"


def is_uuid(value: str) -> bool:
    return bool(UUID_PATTERN.match(value.strip()))


def query_param(url: str, name: str, default: str | None = None) -> str | None:
    """Value of a query parameter, matched case-insensitively."""
    name = name.lower()
    for key, value in split_query(url)[1].items():
        if key.lower() == name:
            return value
    return default


def strip_query_params(url: str, names) -> str:
    """Remove the named query parameters (case-insensitive), keeping the others."""
    names = {n.lower() for n in names}
    base, params = split_query(url)
    return with_query(base, **{k: v for k, v in params.items() if k.lower() not in names})
