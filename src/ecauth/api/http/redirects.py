"""Redirect URL helpers."""

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


def build_redirect_url(base_url: str, **params: str | None) -> str:
    """Append `params` to `base_url`, keeping its existing query and dropping None values."""
    parts = urlsplit(base_url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((k, v) for k, v in params.items() if v is not None)
    return urlunsplit(parts._replace(query=urlencode(query)))
