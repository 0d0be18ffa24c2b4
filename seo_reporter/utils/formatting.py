"""Display helpers for metrics, deltas, and URLs."""

from typing import Optional
from urllib.parse import urlparse


def format_number(n: int | float) -> str:
    """Format a number with thousands separators.

    Examples:
        >>> format_number(1234567)
        '1,234,567'
        >>> format_number(1234.5)
        '1,234.5'
    """
    if isinstance(n, float) and not n.is_integer():
        return f"{n:,.1f}"
    return f"{int(n):,}"


def format_change(value: float, decimals: int = 1) -> str:
    """Signed percentage, e.g. ``+12.5%`` or ``-3.0%``."""
    return f"{value:+.{decimals}f}%"


def format_ctr(ctr: float) -> str:
    """CTR fraction as a percentage string: 0.025 -> '2.50%'."""
    return f"{ctr * 100:.2f}%"


def format_position_change(delta: float) -> str:
    """Position delta in words.  Lower positions are better."""
    if delta < 0:
        return f"improved {abs(delta):.1f} positions"
    if delta > 0:
        return f"dropped {delta:.1f} positions"
    return "unchanged"


def page_label(url: str) -> str:
    """Short label for a page URL: its last non-empty path segment.

    Examples:
        >>> page_label("https://example.com/rentals/pet-policy/")
        'pet-policy'
        >>> page_label("https://example.com/")
        'homepage'
    """
    path = urlparse(url).path if "://" in url else url
    segments = [s for s in path.split("/") if s]
    return segments[-1] if segments else "homepage"


def extract_domain(url: str) -> Optional[str]:
    """Host part of a URL or Search Console property, without ``www.``.

    Handles ``sc-domain:example.com`` properties as well as full URLs.
    """
    url = url.strip()
    if not url:
        return None
    if url.startswith("sc-domain:"):
        host = url.split(":", 1)[1]
    else:
        if "://" not in url:
            url = f"https://{url}"
        host = urlparse(url).hostname or ""
    host = host.lower().strip().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host or None


def is_valid_site_url(url: str) -> bool:
    """True for ``sc-domain:`` properties and http(s) URLs with a dotted host."""
    url = url.strip()
    if url.startswith("sc-domain:"):
        return "." in url.split(":", 1)[1]
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and "." in (parsed.hostname or "")
