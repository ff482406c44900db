from __future__ import annotations

from dataclasses import dataclass

from kyoture.core.errors import UnsupportedSourceError

DEFAULT_CATEGORIES = (
    "Music",
    "Theatre",
    "Dance",
    "Art",
    "Workshop",
    "Festival",
    "Family",
    "Wellness",
    "Sports",
)

DEFAULT_TAGS = (
    "Classical Music",
    "Contemporary Music",
    "Jazz",
    "Opera",
    "Ballet",
    "Modern Dance",
    "Experimental Theatre",
    "Drama",
    "Stand-Up Comedy",
    "Art Exhibition",
    "Photography",
    "Painting",
    "Sculpture",
    "Creative Workshop",
    "Cooking Class",
    "Wine Tasting",
    "Wellness Retreat",
    "Meditation",
    "Yoga",
    "Marathon",
    "Kids Activities",
    "Outdoor Adventure",
    "Walking Tour",
    "Historical Tour",
    "Book Reading",
    "Poetry Slam",
    "Cultural Festival",
    "Film Screening",
    "Anime",
    "Networking Event",
    "Startup Event",
    "Tech Conference",
    "Fashion Show",
    "Food Festival",
    "Pop-up Market",
    "Charity Event",
    "Community Event",
    "Traditional Arts",
    "Ritual/Ceremony",
    "Virtual Event",
)

MUSEUM_CATEGORIES = (
    "Art Exhibition",
    "Historical Exhibition",
    "Cultural Event",
    "Workshop",
    "Family",
    "Educational",
)

MUSEUM_TAGS = (
    "Painting",
    "Sculpture",
    "Calligraphy",
    "Ceramics",
    "Japanese Art",
    "Chinese Art",
    "Special Exhibition",
    "Feature Exhibition",
    "Traditional Arts",
    "National Treasure",
    "Cultural Heritage",
)


@dataclass(frozen=True)
class SourceProfile:
    key: str
    organization: str
    base_url: str
    venue_name: str | None = None
    city: str | None = "Kyoto"
    country: str | None = "Japan"
    categories: tuple[str, ...] = DEFAULT_CATEGORIES
    tags: tuple[str, ...] = DEFAULT_TAGS

    @property
    def label(self) -> str:
        return f"{self.organization}'s event page"


SOURCES: dict[str, SourceProfile] = {
    profile.key: profile
    for profile in [
        SourceProfile("rohm_theatre", "Rohm Theatre", "https://rohmtheatrekyoto.jp", "ROHM Theatre Kyoto"),
        SourceProfile("kyoto_concert_hall", "Kyoto Concert Hall", "https://www.kyotoconcerthall.org", "Kyoto Concert Hall"),
        SourceProfile("kyoto_kanze", "Kyoto Kanze", "http://kyoto-kanze.jp", "Kyoto Kanze Noh Theatre"),
        SourceProfile("waondo", "Waondo", "https://www.waondo.net"),
        SourceProfile("kyoto_gattaca", "Kyoto Gattaca", "http://kyoto-gattaca.jp", "Kyoto Gattaca"),
        SourceProfile("kakubarhythm", "Kakubarhythm", "https://kakubarhythm.com"),
        SourceProfile("growly", "Growly", "https://growly.net", "GROWLY"),
        SourceProfile("kyoto_fanj", "Kyoto Fanj", "https://www.kyoto-fanj.com", "Kyoto FANJ"),
        SourceProfile("fabcafe", "FabCafe Kyoto", "https://fabcafe.com", "FabCafe Kyoto"),
        SourceProfile("kyotoartcenter", "Kyoto Art Center", "https://www.kac.or.jp", "Kyoto Art Center"),
        SourceProfile(
            "kyoto_national_museum",
            "Kyoto National Museum",
            "https://www.kyohaku.go.jp",
            "Kyoto National Museum",
            categories=MUSEUM_CATEGORIES,
            tags=MUSEUM_TAGS,
        ),
    ]
}


def get_source(site: str) -> SourceProfile:
    key = (site or "").strip().lower()
    profile = SOURCES.get(key)
    if profile is None:
        raise UnsupportedSourceError(site)
    return profile


def is_supported(site: str | None) -> bool:
    return bool(site) and site.strip().lower() in SOURCES


def split_sites(site_field: str) -> list[str]:
    """Split a comma-joined multi-source `site` value into individual tags."""
    return [part.strip().lower() for part in (site_field or "").split(",") if part.strip()]
