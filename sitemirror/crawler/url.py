"""URL normalization, classification, exclusion, and link extraction helpers."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from typing import Iterable, Sequence
from urllib.parse import quote, urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from .types import AssetKind, LinkRecord


DEFAULT_ALLOWED_SCHEMES = ("http", "https")
SKIP_HREF_PREFIXES = ("javascript:", "mailto:", "tel:", "data:")
SKIP_ASSET_PREFIXES = ("data:", "blob:", "javascript:")

ASSET_EXTENSIONS: dict[AssetKind, tuple[str, ...]] = {
    AssetKind.IMAGE: (".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".ico", ".bmp"),
    AssetKind.STYLESHEET: (".css",),
    AssetKind.SCRIPT: (".js", ".mjs"),
    AssetKind.FONT: (".woff", ".woff2", ".ttf", ".otf", ".eot"),
}

_FOLDER_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9\-_/]")


def _split(url: str):
    """Return SplitResult for an absolute URL, or None when it cannot be parsed."""

    try:
        parsed = urlsplit(url.strip())
        # Touch the port so malformed ports surface here.
        parsed.port
    except (ValueError, AttributeError):
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    return parsed


def _has_default_port(scheme: str, port: int | None) -> bool:
    if port is None:
        return False
    return (scheme == "http" and port == 80) or (scheme == "https" and port == 443)


def _normalize_netloc(parsed_url, *, include_userinfo: bool = True) -> str:
    host = (parsed_url.hostname or "").lower()
    if not host:
        return parsed_url.netloc.lower()
    if ":" in host:
        host = f"[{host}]"

    userinfo = ""
    if include_userinfo and parsed_url.username:
        userinfo = quote(parsed_url.username, safe="")
        if parsed_url.password:
            userinfo += ":" + quote(parsed_url.password, safe="")
        userinfo += "@"

    port = parsed_url.port
    if port is not None and not _has_default_port(parsed_url.scheme.lower(), port):
        return f"{userinfo}{host}:{port}"
    return f"{userinfo}{host}"


def host_from_url(url: str) -> str:
    """Extract lowercase host from URL ('' when unparsable)."""

    parsed = _split(url or "")
    if parsed is None:
        return ""
    return (parsed.hostname or "").lower()


def origin_of(url: str) -> str | None:
    """Return `scheme://host[:port]` for an absolute URL."""

    parsed = _split(url or "")
    if parsed is None:
        return None
    return f"{parsed.scheme.lower()}://{_normalize_netloc(parsed, include_userinfo=False)}"


def is_http_url(url: str, allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES) -> bool:
    """Return True if URL is absolute and has an allowed HTTP-like scheme."""

    parsed = _split(url or "")
    if parsed is None:
        return False
    return parsed.scheme.lower() in {scheme.lower() for scheme in allowed_schemes}


def normalize_url(url: str) -> str:
    """Canonicalize a page URL for visited-set membership.

    Strips the fragment and one trailing slash (the root path `/` is kept).
    Anything that does not parse as an absolute URL is returned unchanged.
    """

    parsed = _split(url) if isinstance(url, str) else None
    if parsed is None:
        return url

    path = parsed.path or "/"
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]

    return urlunsplit(
        (parsed.scheme.lower(), _normalize_netloc(parsed), path, parsed.query, "")
    )


def is_internal(url: str, base_origin: str) -> bool:
    """Return True iff `url` has the same hostname as `base_origin`."""

    parsed = _split(url or "")
    base = _split(base_origin or "")
    if parsed is None or base is None:
        return False
    host = (parsed.hostname or "").lower()
    return bool(host) and host == (base.hostname or "").lower()


def _pattern_to_regex(pattern: str) -> re.Pattern[str]:
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")))


def is_excluded(url: str, patterns: Iterable[str]) -> bool:
    """Return True if the URL path or full URL matches any glob-like pattern.

    `*` matches any substring; every other character is literal. Unparsable
    URLs are always excluded.
    """

    parsed = _split(url or "")
    if parsed is None:
        return True

    path = parsed.path or "/"
    for pattern in patterns:
        if not pattern:
            continue
        regex = _pattern_to_regex(pattern)
        if regex.search(path) or regex.search(url):
            return True
    return False


def asset_dedup_key(url: str) -> str | None:
    """Return origin + path for an asset URL, or None for URLs that are never downloaded."""

    if not url:
        return None
    lowered = url.strip().lower()
    if any(lowered.startswith(prefix) for prefix in SKIP_ASSET_PREFIXES):
        return None

    parsed = _split(url)
    if parsed is None:
        return None
    origin = f"{parsed.scheme.lower()}://{_normalize_netloc(parsed, include_userinfo=False)}"
    return origin + (parsed.path or "/")


def classify_asset_url(url: str) -> AssetKind | None:
    """Guess asset kind from the URL path extension."""

    parsed = _split(url or "")
    if parsed is None:
        return None
    path = parsed.path.lower()
    for kind, extensions in ASSET_EXTENSIONS.items():
        if path.endswith(extensions):
            return kind
    return None


def resolve_url(
    base_url: str,
    href: str | None,
    *,
    allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES,
) -> str | None:
    """Resolve possibly relative link against base URL and validate scheme."""

    if href is None:
        return None

    candidate = href.strip()
    if not candidate or candidate.startswith("#"):
        return None

    lowered = candidate.lower()
    if any(lowered.startswith(prefix) for prefix in SKIP_HREF_PREFIXES):
        return None

    try:
        absolute = urljoin(base_url, candidate)
    except ValueError:
        return None

    if is_http_url(absolute, allowed_schemes=allowed_schemes):
        return absolute
    return None


def url_to_folder_name(url: str) -> str:
    """Map a page URL to a relative folder path inside the mirror.

    URLs that differ only in their query string get distinct folders through a
    short digest suffix, e.g. `list-q1a2b3c4d`.
    """

    parsed = _split(url or "")
    if parsed is None:
        return "unknown"

    path = parsed.path.strip("/")
    folder = _FOLDER_UNSAFE_RE.sub("-", path) if path else "home"
    if parsed.query:
        digest = hashlib.sha256(parsed.query.encode("utf-8")).hexdigest()[:8]
        folder = f"{folder}-q{digest}"
    return folder


def output_folder_name(url: str, now: datetime | None = None) -> str:
    """Build `<host-with-dashes>_<YYYY-MM-DD_HH-MM>` for one crawl run."""

    moment = now or datetime.now(timezone.utc)
    timestamp = moment.strftime("%Y-%m-%d_%H-%M")

    host = host_from_url(url)
    if not host:
        return f"website_{timestamp}"
    return f"{host.replace('.', '-')}_{timestamp}"


def extract_links_from_html(
    html: str | bytes,
    *,
    base_url: str,
    internal_only: bool = True,
) -> list[LinkRecord]:
    """Extract resolved anchor links with their text and title.

    Returns links in document order with duplicate absolute URLs removed.
    """

    soup = BeautifulSoup(html, "lxml")
    return links_from_soup(soup, base_url=base_url, internal_only=internal_only)


def links_from_soup(
    soup: BeautifulSoup,
    *,
    base_url: str,
    internal_only: bool = True,
) -> list[LinkRecord]:
    out: list[LinkRecord] = []
    seen: set[str] = set()

    for element in soup.select("a[href]"):
        resolved = resolve_url(base_url, element.get("href"))
        if not resolved:
            continue
        if internal_only and not is_internal(resolved, base_url):
            continue
        if resolved in seen:
            continue

        seen.add(resolved)
        out.append(
            LinkRecord(
                url=resolved,
                text=element.get_text(" ", strip=True),
                title=str(element.get("title") or ""),
            )
        )

    return out


__all__ = [
    "ASSET_EXTENSIONS",
    "DEFAULT_ALLOWED_SCHEMES",
    "SKIP_ASSET_PREFIXES",
    "SKIP_HREF_PREFIXES",
    "asset_dedup_key",
    "classify_asset_url",
    "extract_links_from_html",
    "host_from_url",
    "is_excluded",
    "is_http_url",
    "is_internal",
    "links_from_soup",
    "normalize_url",
    "origin_of",
    "output_folder_name",
    "resolve_url",
    "url_to_folder_name",
]
