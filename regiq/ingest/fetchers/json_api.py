"""Paginated JSON REST API fetcher."""

import logging
from abc import abstractmethod
from typing import Any, AsyncIterator, Optional

from regiq.ingest.base import BaseFetcher, FetchConfig, RawRecord
from regiq.ingest.http_client import PermanentSourceError, SourceFetchError, fetch_with_policy

logger = logging.getLogger(__name__)


class JSONAPIFetcher(BaseFetcher):
    """
    Base fetcher for JSON REST APIs.

    Subclasses describe the query string for a page, where the result list
    lives in the payload and how one item becomes a raw record. Pagination
    stops at the first empty page, a short page, or ``config.max_pages``.

    A source that serves one document (no pagination) returns ``None`` from
    ``build_params`` for every page after the first.

    A failure before any record was yielded is raised. Once records have been
    yielded, a failing page is added to ``partial_errors`` and pagination of
    that URL stops; records already yielded stand.
    """

    accept = "application/json"

    def build_params(self, config: FetchConfig, page: int) -> Optional[dict[str, Any]]:
        """Query parameters for the 0-based ``page``; ``None`` stops pagination."""
        if page > 0:
            return None
        return {}

    def extract_items(self, payload: Any) -> list[dict]:
        """Pull the list of result objects out of a decoded payload."""
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            results = payload.get("results")
            if isinstance(results, list):
                return results
        raise PermanentSourceError(f"Unexpected JSON payload shape: {type(payload).__name__}")

    @abstractmethod
    def make_record(self, item: dict, config: FetchConfig) -> RawRecord:
        """Turn one result object into a raw record."""
        raise NotImplementedError

    def is_empty_status(self, status_code: int) -> bool:
        """Whether a non-2xx answer really means "no results" (openFDA answers 404)."""
        return False

    async def fetch_page(self, client, url: str, config: FetchConfig, params: dict, page: int) -> Optional[list]:
        """
        Fetch and decode one page.

        Returns:
            The page's items, or None when the API reports "no results"
        """
        headers = {"Accept": self.accept}
        headers.update(config.headers)

        try:
            response = await fetch_with_policy(
                client, url, config.retry, headers=headers, params=params
            )
        except PermanentSourceError as e:
            if e.status_code is not None and self.is_empty_status(e.status_code):
                logger.info(f"{config.source}: no results on page {page + 1} of {url}")
                return None
            raise

        try:
            payload = response.json()
        except ValueError as e:
            raise PermanentSourceError(
                f"{config.source}: invalid JSON from {url} (page {page + 1}): {e}"
            ) from e

        return self.extract_items(payload)

    async def fetch(self, config: FetchConfig) -> AsyncIterator[RawRecord]:
        client = await self._get_client()
        yielded = 0

        for url in config.urls:
            for page in range(config.max_pages):
                params = self.build_params(config, page)
                if params is None:
                    break

                try:
                    items = await self.fetch_page(client, url, config, params, page)
                except SourceFetchError as e:
                    if not yielded:
                        raise
                    message = f"{config.source}: page {page + 1} of {url} failed after {yielded} records: {e}"
                    logger.warning(message)
                    self.partial_errors.append(message)
                    break

                if not items:
                    logger.info(f"{config.source}: page {page + 1} empty, stopping pagination")
                    break

                logger.info(f"{config.source}: page {page + 1} returned {len(items)} items")
                for item in items:
                    if not isinstance(item, dict):
                        continue
                    yielded += 1
                    yield self.make_record(item, config)

                if len(items) < config.page_size:
                    break
