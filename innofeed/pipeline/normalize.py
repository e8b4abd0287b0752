"""Candidate normalization: cleaning, hashing, language and company extraction."""
import re
from dataclasses import dataclass
from typing import List, Optional

from innofeed.utils.text import clean_content, clean_html, content_hash, detect_language
from innofeed.utils.urlnorm import normalize_url

_COMPANY_SUFFIX_RE = re.compile(
    r"([A-Z][a-zA-Z]+(?:\s+[A-Z][a-zA-Z]+)*)\s+(?:Insurance|Assurance|Re|Life|Health|Group|Holdings)\b"
)

KNOWN_INSURTECHS = [
    "Lemonade", "Root", "Oscar", "Hippo", "Metromile", "Clover",
    "Bright Health", "Devoted Health",
]

KNOWN_CHINESE_INSURERS = ["平安", "人保", "太平洋", "中国人寿", "泰康", "众安", "水滴"]

TITLE_MAX_LENGTH = 1000


@dataclass
class Candidate:
    """Raw output of a collector before normalization."""
    title: str
    url: str
    content: str = ""
    # Content is HTML and needs markup removal first
    is_html: bool = False


@dataclass
class NormalizedItem:
    """Candidate ready for the dedup check and insertion."""
    title: str
    content: str
    source_url: str
    language: str
    content_hash: str

    def to_record(self, source_id: int) -> dict:
        return {
            "source_id": source_id,
            "source_url": self.source_url,
            "title": self.title,
            "content": self.content,
            "language": self.language,
            "content_hash": self.content_hash,
        }


def dedup_key(content: str, url: str) -> str:
    """The single dedup convention used by every collector: hash(cleaned content + URL)."""
    return content_hash(content + url)


def normalize_candidate(candidate: Candidate) -> Optional[NormalizedItem]:
    """
    Clean a candidate and compute its dedup key.

    Returns None when the candidate has no title or URL.
    """
    url = normalize_url(candidate.url or "")
    title = clean_content(candidate.title or "")[:TITLE_MAX_LENGTH]
    if not title or not url:
        return None

    body = clean_html(candidate.content) if candidate.is_html else candidate.content
    content = clean_content(body or "")
    if not content:
        content = title

    return NormalizedItem(
        title=title,
        content=content,
        source_url=url,
        language=detect_language(f"{title} {content}"),
        content_hash=dedup_key(content, url),
    )


def extract_company_names(text: str) -> List[str]:
    """Heuristic company name extraction, order-preserving and de-duplicated."""
    if not text:
        return []

    names: List[str] = [m.group(1).strip() for m in _COMPANY_SUFFIX_RE.finditer(text)]

    for name in KNOWN_INSURTECHS:
        if re.search(rf"\b{re.escape(name)}\b", text):
            names.append(name)

    for name in KNOWN_CHINESE_INSURERS:
        if name in text:
            names.append(name)

    return list(dict.fromkeys(names))
