"""RSS/Atom feed fetcher.

Parses RSS 2.0 ``<item>`` and Atom ``<entry>`` elements into
FeedEntryRecord objects, in document order.
"""

import logging
from typing import AsyncIterator
from xml.etree import ElementTree as ET

from regiq.ingest.base import BaseFetcher, FeedEntryRecord, FetchConfig
from regiq.ingest.http_client import PermanentSourceError, fetch_with_policy

logger = logging.getLogger(__name__)

ATOM_NS = "{http://www.w3.org/2005/Atom}"
DC_NS = "{http://purl.org/dc/elements/1.1/}"

FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"


def _child_text(elem: ET.Element, *tags: str) -> str:
    """Return the stripped text of the first child matching any of ``tags``."""
    for tag in tags:
        child = elem.find(tag)
        if child is not None and child.text:
            return child.text.strip()
    return ""


def _atom_link(entry: ET.Element) -> str:
    for link in entry.findall(f"{ATOM_NS}link"):
        rel = link.get("rel", "alternate")
        if rel == "alternate" and link.get("href"):
            return link.get("href").strip()
    link = entry.find(f"{ATOM_NS}link")
    if link is not None and link.get("href"):
        return link.get("href").strip()
    return ""


def parse_feed(content: bytes, source: str, feed_url: str = "") -> list[FeedEntryRecord]:
    """
    Parse an RSS or Atom document.

    Args:
        content: Raw XML bytes
        source: Source tag stamped on each record
        feed_url: URL the document came from

    Returns:
        List of FeedEntryRecord in document order

    Raises:
        PermanentSourceError: If the payload is not well-formed XML
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise PermanentSourceError(f"{source}: unparsable feed {feed_url}: {e}") from e

    records: list[FeedEntryRecord] = []

    # RSS 2.0
    for item in root.iter("item"):
        raw = {child.tag: (child.text or "").strip() for child in item}
        records.append(FeedEntryRecord(
            source=source,
            title=_child_text(item, "title"),
            description=_child_text(item, "description", "{http://purl.org/rss/1.0/modules/content/}encoded"),
            link=_child_text(item, "link"),
            published=_child_text(item, "pubDate", f"{DC_NS}date"),
            guid=_child_text(item, "guid"),
            feed_url=feed_url,
            categories=[c.text.strip() for c in item.findall("category") if c.text],
            raw=raw,
        ))

    # Atom
    for entry in root.iter(f"{ATOM_NS}entry"):
        raw = {child.tag.replace(ATOM_NS, ""): (child.text or "").strip() for child in entry}
        link = _atom_link(entry)
        raw["link"] = link
        records.append(FeedEntryRecord(
            source=source,
            title=_child_text(entry, f"{ATOM_NS}title"),
            description=_child_text(entry, f"{ATOM_NS}summary", f"{ATOM_NS}content"),
            link=link,
            published=_child_text(entry, f"{ATOM_NS}published", f"{ATOM_NS}updated"),
            guid=_child_text(entry, f"{ATOM_NS}id"),
            feed_url=feed_url,
            categories=[c.get("term") for c in entry.findall(f"{ATOM_NS}category") if c.get("term")],
            raw=raw,
        ))

    return records


class FeedFetcher(BaseFetcher):
    """Fetcher for RSS/Atom feeds."""

    async def fetch(self, config: FetchConfig) -> AsyncIterator[FeedEntryRecord]:
        client = await self._get_client()
        headers = {"Accept": FEED_ACCEPT}
        headers.update(config.headers)

        for feed_url in config.urls:
            response = await fetch_with_policy(client, feed_url, config.retry, headers=headers)
            records = parse_feed(response.content, config.source, feed_url)
            logger.info(f"Parsed {len(records)} entries from feed {feed_url}")
            for record in records:
                yield record
