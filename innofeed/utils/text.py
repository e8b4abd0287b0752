"""Text processing utilities: cleaning, hashing, language detection."""
import hashlib
import re

from bs4 import BeautifulSoup

HASH_LENGTH = 32

_TAG_RE = re.compile(r"<[^>]*>")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_WS_RE = re.compile(r"\s+")

# Script ranges are checked before Latin diacritics; first match wins.
_HAN_RE = re.compile(r"[\u4e00-\u9fff]")
_TRADITIONAL_RE = re.compile(r"[\u7e41\u9ad4]")
_LANGUAGE_RULES = [
    (re.compile(r"[\u3040-\u309f\u30a0-\u30ff]"), "ja"),
    (re.compile(r"[\uac00-\ud7af]"), "ko"),
    (re.compile(r"[\u0e00-\u0e7f]"), "th"),
    (re.compile(r"[\u0600-\u06ff]"), "ar"),
    (re.compile(r"[äöüß]", re.IGNORECASE), "de"),
    (re.compile(r"[éèêëàâùûçœæ]", re.IGNORECASE), "fr"),
    (re.compile(r"[ñáéíóú¿¡]", re.IGNORECASE), "es"),
    (re.compile(r"[ãõçáéíóú]", re.IGNORECASE), "pt"),
]


def clean_html(html: str) -> str:
    """
    Remove HTML markup and normalize whitespace.

    Args:
        html: Raw HTML content

    Returns:
        Clean text without HTML
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")

    for element in soup(["script", "style", "noscript"]):
        element.decompose()

    text = soup.get_text(separator=" ")
    return " ".join(text.split())


def clean_content(text: str) -> str:
    """Strip tags and control characters, collapse whitespace, trim.

    Idempotent: ``clean_content(clean_content(x)) == clean_content(x)``.
    """
    if not text:
        return ""
    text = _TAG_RE.sub(" ", text)
    text = _CONTROL_RE.sub(" ", text)
    text = _WS_RE.sub(" ", text)
    return text.strip()


def content_hash(content: str) -> str:
    """Dedup key: SHA-256 over lower-cased, whitespace-collapsed content."""
    normalized = _WS_RE.sub(" ", (content or "").lower()).strip()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def detect_language(text: str) -> str:
    """Guess a language tag from the scripts present in ``text``. Defaults to ``en``."""
    if not text:
        return "en"

    if _HAN_RE.search(text):
        # Kana alongside Han is Japanese
        if _LANGUAGE_RULES[0][0].search(text):
            return "ja"
        return "zh-TW" if _TRADITIONAL_RE.search(text) else "zh-CN"

    for pattern, language in _LANGUAGE_RULES:
        if pattern.search(text):
            return language

    return "en"
