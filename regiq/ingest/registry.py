"""Registry of configured regulatory sources."""

import logging

from regiq.ingest.sources.base import SourceDefinition
from regiq.ingest.sources.cdc import CDC_OUTBREAKS
from regiq.ingest.sources.fda import FDA_ENFORCEMENT
from regiq.ingest.sources.feeds import FEED_SOURCES
from regiq.ingest.sources.fsis import FSIS_RECALLS
from regiq.ingest.sources.noaa import NOAA_FISHERIES

logger = logging.getLogger(__name__)


class SourceRegistry:
    """Registry for source definitions, in sync order."""

    _sources: dict[str, SourceDefinition] = {
        source.name: source
        for source in [FDA_ENFORCEMENT, FSIS_RECALLS, CDC_OUTBREAKS, *FEED_SOURCES, NOAA_FISHERIES]
    }

    @classmethod
    def get_source(cls, name: str) -> SourceDefinition:
        """
        Look up a source definition.

        Args:
            name: Source identifier

        Returns:
            SourceDefinition

        Raises:
            ValueError: If the source is not registered
        """
        if name not in cls._sources:
            raise ValueError(
                f"Unknown source: {name}. Available: {list(cls._sources.keys())}"
            )
        return cls._sources[name]

    @classmethod
    def register_source(cls, definition: SourceDefinition) -> None:
        cls._sources[definition.name] = definition
        logger.info(f"Registered source: {definition.name}")

    @classmethod
    def list_sources(cls) -> list[str]:
        """List all registered source identifiers."""
        return list(cls._sources.keys())

    @classmethod
    def all(cls) -> list[SourceDefinition]:
        return list(cls._sources.values())

    @classmethod
    def resolve(cls, names: list[str] | None = None) -> list[SourceDefinition]:
        """Definitions for ``names`` (all sources when empty)."""
        if not names:
            return cls.all()
        return [cls.get_source(name) for name in names]
