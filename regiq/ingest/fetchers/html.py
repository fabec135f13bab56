"""HTML page scraper using CSS selector extraction rules."""

import logging
from typing import AsyncIterator, List, Optional, Tuple
from urllib.parse import urljoin

from selectolax.parser import HTMLParser, Node

from regiq.ingest.base import BaseFetcher, ExtractionRule, FetchConfig, ScrapedItemRecord
from regiq.ingest.http_client import PermanentSourceError, fetch_with_policy

logger = logging.getLogger(__name__)

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


def _parse_selectors(selector_input: Optional[str]) -> List[str]:
    """Split a comma-separated selector string into individual selectors."""
    if not selector_input:
        return []
    return [s.strip() for s in selector_input.split(",") if s.strip()]


def _try_selectors(node: Node, selectors: List[str]) -> Tuple[Optional[str], Optional[Node]]:
    """Return the first selector (and its node) that matches inside ``node``."""
    for selector in selectors:
        try:
            elem = node.css_first(selector)
        except Exception as e:
            logger.debug(f"Selector error: {selector[:50]} - {e}")
            continue
        if elem is not None:
            return selector, elem
    return None, None


def extract_items(
    html: str,
    rule: ExtractionRule,
    source: str,
    page_url: str,
) -> list[ScrapedItemRecord]:
    """
    Apply an extraction rule to a page.

    Args:
        html: Page HTML
        rule: Selectors describing the repeated node and its fields
        source: Source tag stamped on each record
        page_url: URL used to resolve relative links

    Returns:
        Up to ``rule.max_items`` ScrapedItemRecord objects in document order
    """
    parser = HTMLParser(html)
    if parser.body is None:
        raise PermanentSourceError(f"{source}: page has no body: {page_url}")

    title_selectors = _parse_selectors(rule.title_selector)
    summary_selectors = _parse_selectors(rule.summary_selector)
    date_selectors = _parse_selectors(rule.date_selector)
    link_selectors = _parse_selectors(rule.link_selector)

    nodes = parser.css(rule.item_selector)
    records: list[ScrapedItemRecord] = []

    for node in nodes[: rule.max_items]:
        text = " ".join(node.text(separator=" ", strip=True).split())

        _, title_elem = _try_selectors(node, title_selectors)
        title = title_elem.text(strip=True) if title_elem is not None else ""

        summary = text
        if summary_selectors:
            _, summary_elem = _try_selectors(node, summary_selectors)
            if summary_elem is not None:
                summary = summary_elem.text(separator=" ", strip=True)

        date_text = ""
        _, date_elem = _try_selectors(node, date_selectors)
        if date_elem is not None:
            date_text = date_elem.attributes.get("datetime") or date_elem.text(strip=True)

        link = ""
        _, link_elem = _try_selectors(node, link_selectors)
        if link_elem is not None:
            href = (link_elem.attributes.get("href") or "").strip()
            if href:
                link = urljoin(page_url, href)
        elif node.tag == "a" and node.attributes.get("href"):
            link = urljoin(page_url, node.attributes["href"].strip())

        records.append(ScrapedItemRecord(
            source=source,
            title=title,
            text=summary,
            link=link,
            date_text=date_text,
            page_url=page_url,
            raw={"text": text, "title": title, "link": link, "date": date_text, "page": page_url},
        ))

    if not nodes:
        logger.warning(f"{source}: item selector matched nothing on {page_url} (site redesign?)")

    return records


class HTMLFetcher(BaseFetcher):
    """Fetcher for server-rendered HTML listing pages."""

    async def fetch(self, config: FetchConfig) -> AsyncIterator[ScrapedItemRecord]:
        if config.extraction is None:
            raise PermanentSourceError(f"{config.source}: no extraction rule configured")

        client = await self._get_client()
        headers = {"Accept": HTML_ACCEPT}
        headers.update(config.headers)

        for page_url in config.urls:
            response = await fetch_with_policy(client, page_url, config.retry, headers=headers)
            records = extract_items(response.text, config.extraction, config.source, page_url)
            logger.info(f"Extracted {len(records)} items from {page_url}")
            for record in records:
                yield record
