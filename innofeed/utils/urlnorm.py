"""URL normalization utilities."""
from typing import Optional, Set
from urllib.parse import parse_qs, urlencode, urljoin, urlparse, urlunparse

# Tracking parameters removed before a URL is stored or hashed
DEFAULT_PARAMS_TO_REMOVE: Set[str] = {
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "gclid", "fbclid", "yclid", "ref", "spm", "from", "share",
}


def normalize_url(url: str, params_to_remove: Set[str] = None) -> str:
    """
    Normalize URL by removing tracking parameters and the fragment.

    Args:
        url: Original URL
        params_to_remove: Query param names to remove (case-insensitive)

    Returns:
        Normalized URL, or the input unchanged when it cannot be parsed
    """
    if not url:
        return ""

    params_lower = {p.lower() for p in (params_to_remove or DEFAULT_PARAMS_TO_REMOVE)}

    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return url

    query_params = parse_qs(parsed.query, keep_blank_values=False)
    filtered_params = {
        k: v for k, v in sorted(query_params.items())
        if k.lower() not in params_lower
    }
    new_query = urlencode(filtered_params, doseq=True) if filtered_params else ""

    return urlunparse((
        parsed.scheme,
        parsed.netloc.lower(),
        parsed.path.rstrip("/") if parsed.path != "/" else parsed.path,
        parsed.params,
        new_query,
        "",
    ))


def extract_domain(url: str) -> str:
    """Extract the lower-cased hostname from a URL."""
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def is_valid_url(url: str) -> bool:
    """Check that URL is absolute http(s)."""
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def make_absolute(base_url: str, href: Optional[str]) -> Optional[str]:
    """Resolve a scraped link against the page it was found on."""
    if not href:
        return None
    href = href.strip()
    if href.startswith(("javascript:", "mailto:", "#")):
        return None
    absolute = urljoin(base_url, href)
    return absolute if is_valid_url(absolute) else None
