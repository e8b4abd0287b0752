"""HTML listing-page collector driven by CSS selectors."""
from typing import Dict, List, Optional

from bs4 import BeautifulSoup, Tag

from innofeed.db.models import Source
from innofeed.errors import FetchError
from innofeed.logging_setup import get_logger
from innofeed.pipeline.normalize import Candidate
from innofeed.sources.base import BaseCollector
from innofeed.utils.urlnorm import extract_domain, make_absolute

logger = get_logger("sources.website")

DEFAULT_ARTICLE_SELECTORS = [
    "article",
    ".article",
    ".news-item",
    ".post",
    ".entry",
    ".story",
    '[class*="article"]',
    '[class*="news"]',
    ".list-item",
    "li.item",
]

DEFAULT_TITLE_SELECTORS = ["h1", "h2", "h3", ".title", "a.title", '[class*="title"]', "a"]

DEFAULT_CONTENT_SELECTORS = [".summary", ".excerpt", ".description", "p", ".content"]

# Known listing layouts, keyed by domain suffix
SITE_PRESETS: Dict[str, Dict[str, str]] = {
    "zgbxb.com": {"articleSelector": ".news-list li", "titleSelector": "a"},
    "ehuibao.com": {"articleSelector": ".article-item", "titleSelector": ".title"},
    "coverager.com": {"articleSelector": "article", "titleSelector": "h2 a"},
    "pingan.com": {"articleSelector": ".news-item", "titleSelector": "a"},
}

PAGE_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


def resolve_selectors(url: str, source_config: Optional[dict]) -> Dict[str, List[str]]:
    """Selector lists to try, most specific first: site preset, source config, defaults."""
    domain = extract_domain(url)
    preset: Dict[str, str] = {}
    for suffix, selectors in SITE_PRESETS.items():
        if domain == suffix or domain.endswith("." + suffix):
            preset = selectors
            break

    overrides = dict(preset)
    overrides.update({k: v for k, v in (source_config or {}).items() if v})

    def pick(key: str, defaults: List[str]) -> List[str]:
        if overrides.get(key):
            return [overrides[key]] + defaults
        return list(defaults)

    return {
        "article": pick("articleSelector", DEFAULT_ARTICLE_SELECTORS),
        "title": pick("titleSelector", DEFAULT_TITLE_SELECTORS),
        "link": [overrides["linkSelector"]] if overrides.get("linkSelector") else [],
        "content": pick("contentSelector", DEFAULT_CONTENT_SELECTORS),
    }


def _first_text(element: Tag, selectors: List[str]) -> Optional[Tag]:
    for selector in selectors:
        found = element.select_one(selector)
        if found is not None and found.get_text(strip=True):
            return found
    return None


def _find_link(element: Tag, title_el: Tag, link_selectors: List[str]) -> Optional[str]:
    for selector in link_selectors:
        found = element.select_one(selector)
        if found is not None and found.get("href"):
            return found["href"]
    if title_el.name == "a" and title_el.get("href"):
        return title_el["href"]
    inner = title_el.find("a", href=True)
    if inner is not None:
        return inner["href"]
    if element.name == "a" and element.get("href"):
        return element["href"]
    first = element.find("a", href=True)
    return first["href"] if first is not None else None


def parse_listing(
    html: str,
    page_url: str,
    source_config: Optional[dict] = None,
    min_title_length: int = 10,
) -> List[Candidate]:
    """Extract article candidates from a listing page."""
    soup = BeautifulSoup(html, "html.parser")
    selectors = resolve_selectors(page_url, source_config)

    elements: List[Tag] = []
    for selector in selectors["article"]:
        elements = soup.select(selector)
        if elements:
            break

    candidates: List[Candidate] = []
    seen_urls = set()
    for element in elements:
        title_el = _first_text(element, selectors["title"])
        if title_el is None:
            continue
        title = title_el.get_text(" ", strip=True)
        if len(title) < min_title_length:
            continue

        url = make_absolute(page_url, _find_link(element, title_el, selectors["link"]))
        if not url or url in seen_urls:
            continue
        seen_urls.add(url)

        content_el = _first_text(element, selectors["content"])
        content = content_el.get_text(" ", strip=True) if content_el is not None else ""
        if content == title:
            content = ""

        candidates.append(Candidate(title=title, url=url, content=content))

    return candidates


class WebScrapeCollector(BaseCollector):
    """Scrapes listing pages of sources without a feed."""

    source_type = "website"

    @property
    def source_delay(self) -> float:
        return self.collect.web_delay_seconds

    async def fetch_candidates(self, source: Source) -> List[Candidate]:
        async with self.http_client() as client:
            response = await client.get(source.url, headers={"Accept": PAGE_ACCEPT})

        if response.status_code != 200:
            raise FetchError(
                f"Page returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        candidates = parse_listing(
            response.text,
            str(response.url),
            source.config,
            min_title_length=self.collect.min_title_length,
        )
        logger.info("fetch_web_ok", source=source.name, candidates=len(candidates))
        return candidates
