"""Region inference from the source URL and the article text."""
from typing import List, Optional, Tuple

from innofeed.utils.urlnorm import extract_domain

DEFAULT_REGION = "global"

# (region, TLD suffixes, hostname keywords); checked against the URL host only
URL_RULES: List[Tuple[str, Tuple[str, ...], Tuple[str, ...]]] = [
    ("china", (".cn",), ("china",)),
    ("hong_kong", (".hk",), ("hongkong",)),
    ("taiwan", (".tw",), ("taiwan",)),
    ("japan", (".jp",), ("japan",)),
    ("south_korea", (".kr",), ("korea",)),
    ("singapore", (".sg",), ("singapore",)),
    ("india", (".in",), ("india",)),
    ("uk", (".uk",), ("britain",)),
    ("germany", (".de",), ("germany",)),
    ("france", (".fr",), ("france",)),
    ("australia", (".au",), ("australia",)),
]

# (region, keywords); matched case-insensitively in the text
CONTENT_RULES: List[Tuple[str, Tuple[str, ...]]] = [
    ("china", ("china", "中国")),
    ("hong_kong", ("hong kong", "香港")),
    ("japan", ("japan", "日本")),
    ("india", ("india",)),
    ("singapore", ("singapore",)),
    ("usa", ("united states", "u.s.")),
    ("uk", ("united kingdom", "u.k.")),
    ("germany", ("germany", "deutschland")),
]


class RegionDetector:
    """Ordered rule list: URL rules first, then content keywords, first match wins."""

    def __init__(
        self,
        url_rules: Optional[list] = None,
        content_rules: Optional[list] = None,
        default: str = DEFAULT_REGION,
    ):
        self.url_rules = url_rules if url_rules is not None else URL_RULES
        self.content_rules = content_rules if content_rules is not None else CONTENT_RULES
        self.default = default

    def from_url(self, url: str) -> Optional[str]:
        host = extract_domain(url or "")
        if not host:
            return None
        for region, suffixes, keywords in self.url_rules:
            if host.endswith(suffixes) or any(k in host for k in keywords):
                return region
        return None

    def from_content(self, content: str) -> Optional[str]:
        lowered = (content or "").lower()
        for region, keywords in self.content_rules:
            if any(k in lowered for k in keywords):
                return region
        return None

    def detect(self, url: str, content: str) -> str:
        return self.from_url(url) or self.from_content(content) or self.default


_detector = RegionDetector()


def infer_region(url: str, content: str) -> str:
    """Region tag for an article, ``global`` when nothing matches."""
    return _detector.detect(url, content)
