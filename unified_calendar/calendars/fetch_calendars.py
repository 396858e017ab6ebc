import logging
import os
import re
from dataclasses import dataclass
from typing import Optional, Tuple

import requests

from unified_calendar.calendars.parse_ical import parse_ical
from unified_calendar.errors import FetchFailure, InvalidInput
from unified_calendar.models import Platform, RawEvent

logger = logging.getLogger(__name__)

CALENDAR_ID_RE = re.compile(r"ical/([^/]+)\.ics")


def is_http_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


@dataclass(frozen=True)
class FeedSource:
    """One platform's calendar feed for one property."""
    property_key: str
    platform: Platform
    url: str

    @classmethod
    def create(cls, property_key, platform, url, allow_files: bool = False) -> "FeedSource":
        """
        Validates a feed registration.
        Raises InvalidInput without side effects when any field is unusable.
        """
        property_key = (property_key or "").strip()
        url = (url or "").strip()

        if not property_key:
            raise InvalidInput("Missing property key")
        try:
            platform = Platform.parse(platform)
        except ValueError as e:
            raise InvalidInput(str(e)) from e
        if not url:
            raise InvalidInput(f"Missing feed URL for {property_key}")
        if not is_http_url(url) and not (allow_files and os.path.exists(url)):
            raise InvalidInput(f"Invalid feed URL for {property_key}: {url}")

        return cls(property_key=property_key, platform=platform, url=url)

    @property
    def calendar_id(self) -> Optional[str]:
        """Listing id embedded in feed URLs such as .../ical/12345.ics"""
        match = CALENDAR_ID_RE.search(self.url)
        return match.group(1) if match else None


@dataclass(frozen=True)
class FeedResult:
    """Events read from one feed during a refresh, or the reason there are none."""
    source: FeedSource
    events: Tuple[RawEvent, ...] = ()
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def fetch_calendar(source: str, timeout: int = 10) -> str:
    """
    Fetches iCal data.
    - If 'source' is a URL (starts with http), download it.
    - If it's a file path, read it from disk.
    Returns raw ICS text, raises FetchFailure otherwise.
    """

    # Case 1: URL mode
    if is_http_url(source):
        try:
            response = requests.get(source, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchFailure(source, str(e)) from e
        return response.text

    # Case 2: Local file mode
    if os.path.exists(source):
        try:
            with open(source, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise FetchFailure(source, str(e)) from e

    raise FetchFailure(source, "no such URL or file")


def ingest_feed(source: FeedSource, tz, timeout: int = 10) -> FeedResult:
    """
    Fetches and parses one feed.
    A failing feed is logged and yields an empty result; it never raises,
    so sibling feeds of the same refresh are unaffected.
    """
    try:
        raw_ical = fetch_calendar(source.url, timeout=timeout)
        events = tuple(parse_ical(raw_ical, tz, source=source.url))
    except FetchFailure as e:
        logger.error(
            f"Feed {source.platform.value} for {source.property_key} failed: {e.reason}"
        )
        return FeedResult(source=source, error=e.reason)
    except Exception as e:
        logger.exception(
            f"Feed {source.platform.value} for {source.property_key} failed unexpectedly"
        )
        return FeedResult(source=source, error=f"unexpected error: {e}")

    logger.info(
        f"Loaded {len(events)} events from {source.platform.value} feed of {source.property_key}"
    )
    return FeedResult(source=source, events=events)
