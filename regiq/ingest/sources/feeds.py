"""RSS/Atom sources from FDA, FTC, OSHA, CDC and EPA."""

from regiq.classify.urgency import UrgencyProfile
from regiq.ingest.fetchers.feed import FeedFetcher
from regiq.ingest.sources.base import SourceDefinition, keyword_weights

FDA_FOOD_SAFETY_RSS = SourceDefinition(
    name="fda_food_safety_rss",
    source_tag="FDA_FOOD_SAFETY",
    agency="FDA",
    fetcher_class=FeedFetcher,
    urls=["https://www.fda.gov/about-fda/contact-fda/stay-informed/rss-feeds/food-safety-recalls/rss.xml"],
    description="FDA food safety recalls feed (covers FDA and USDA items)",
    category="food-safety",
    # USDA items share the FDA feed; attribute them to FSIS
    agency_keywords={"FSIS": ["usda", "fsis", "meat", "poultry", "egg products"]},
    urgency=UrgencyProfile(
        base_score=10,
        keyword_weights=keyword_weights([
            "recall", "contamination", "outbreak", "salmonella", "listeria", "e.coli",
            "alert", "class i", "class ii", "voluntary", "market withdrawal", "public health",
        ]),
    ),
)

FTC_RSS = SourceDefinition(
    name="ftc_rss",
    source_tag="FTC",
    agency="FTC",
    fetcher_class=FeedFetcher,
    urls=["https://www.ftc.gov/feeds/press-release-consumer-protection.xml"],
    description="FTC consumer protection press releases",
    category="consumer-protection",
    urgency=UrgencyProfile(
        base_score=7,
        keyword_weights=keyword_weights([
            "enforcement", "settlement", "complaint", "action", "order", "food",
            "advertising", "labeling", "deceptive",
        ]),
    ),
)

OSHA_RSS = SourceDefinition(
    name="osha_rss",
    source_tag="OSHA",
    agency="OSHA",
    fetcher_class=FeedFetcher,
    urls=["https://www.osha.gov/news/newsreleases.xml"],
    description="OSHA news releases",
    category="workplace-safety",
    urgency=UrgencyProfile(
        base_score=6,
        keyword_weights=keyword_weights([
            "citation", "violation", "inspection", "penalty", "food", "manufacturing",
            "meatpacking", "poultry", "processing", "fatality",
        ]),
    ),
)

CDC_MEDIA_RSS = SourceDefinition(
    name="cdc_media_rss",
    source_tag="CDC",
    agency="CDC",
    fetcher_class=FeedFetcher,
    urls=["https://tools.cdc.gov/api/v2/resources/media.rss"],
    description="CDC media and news",
    category="foodborne-illness",
    relevance_keywords=[
        "food", "foodborne", "outbreak", "illness", "contamination", "recall", "safety",
        "surveillance", "salmonella", "listeria", "e.coli",
    ],
    urgency=UrgencyProfile(base_score=8),
)

EPA_NEWSROOM_RSS = SourceDefinition(
    name="epa_newsroom_rss",
    source_tag="EPA",
    agency="EPA",
    fetcher_class=FeedFetcher,
    urls=["https://www.epa.gov/feeds/epa-newsroom.xml"],
    description="EPA newsroom",
    category="pesticide-tolerance",
    relevance_keywords=[
        "pesticide", "tolerance", "residue", "agricultural", "chemical", "food", "crop",
        "registration", "water", "contamination",
    ],
    urgency=UrgencyProfile(base_score=8),
)

FEED_SOURCES = [
    FDA_FOOD_SAFETY_RSS,
    FTC_RSS,
    OSHA_RSS,
    CDC_MEDIA_RSS,
    EPA_NEWSROOM_RSS,
]
