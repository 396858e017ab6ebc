import logging
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional
from zoneinfo import ZoneInfo

import yaml

from unified_calendar.calendars.fetch_calendars import FeedSource
from unified_calendar.errors import InvalidInput
from unified_calendar.models import CheckoutDay, Platform

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
CONFIG_ENV_VAR = "UNIFIED_CALENDAR_CONFIG"

# Feeds can be given as <PLATFORM>_<PROPERTY_INDEX> environment variables
MAX_ENV_PROPERTIES = 40


def load_config(path: Optional[str] = None) -> dict:
    """
    Loads YAML configuration file and returns a dictionary.
    A missing file gives an empty configuration (defaults + environment feeds).
    """
    path = path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH

    if not os.path.exists(path):
        logger.warning(f"No configuration file at {path}, using defaults")
        return {}

    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def feeds_from_env(environ: Mapping[str, str]) -> List[FeedSource]:
    """
    Feeds declared as AIRBNB_1, BOOKING_1, ... AIRBNB_40, BOOKING_40.
    The index becomes the property key "property-<index>".
    """
    sources = []
    for index in range(1, MAX_ENV_PROPERTIES + 1):
        for platform in Platform:
            url = environ.get(f"{platform.name}_{index}")
            if not url:
                continue
            try:
                sources.append(FeedSource.create(f"property-{index}", platform, url))
            except InvalidInput as e:
                logger.error(f"Ignoring {platform.name}_{index}: {e}")
    return sources


def feeds_from_config(entries) -> List[FeedSource]:
    """
    Feeds listed in config.yaml:

        feeds:
          - property: property-1
            platform: airbnb
            url: https://www.airbnb.com/calendar/ical/123.ics?s=...
    """
    sources = []
    for entry in entries or []:
        try:
            sources.append(FeedSource.create(
                entry.get("property"),
                entry.get("platform", Platform.AIRBNB),
                entry.get("url"),
                allow_files=True,
            ))
        except (InvalidInput, AttributeError) as e:
            logger.error(f"Ignoring feed entry {entry!r}: {e}")
    return sources


@dataclass
class Settings:
    timezone: str = "Europe/Paris"
    refresh_interval_minutes: int = 60
    fetch_timeout: int = 10
    max_workers: int = 8
    checkout_day: CheckoutDay = CheckoutDay.INCLUSIVE
    window_days: int = 30
    display_names_path: str = "property-names.json"
    vendors_path: str = "property-vendors.json"
    state_bucket: Optional[str] = None
    feeds: List[FeedSource] = field(default_factory=list)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_config(cls, config: dict, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Builds settings from a loaded config dict plus environment feeds."""
        environ = os.environ if environ is None else environ
        defaults = cls()

        feeds = []
        for source in feeds_from_config(config.get("feeds")) + feeds_from_env(environ):
            if source not in feeds:
                feeds.append(source)

        return cls(
            timezone=config.get("timezone", defaults.timezone),
            refresh_interval_minutes=int(config.get("refresh_interval_minutes", defaults.refresh_interval_minutes)),
            fetch_timeout=int(config.get("fetch_timeout", defaults.fetch_timeout)),
            max_workers=int(config.get("max_workers", defaults.max_workers)),
            checkout_day=CheckoutDay(str(config.get("checkout_day", defaults.checkout_day.value)).lower()),
            window_days=int(config.get("window_days", defaults.window_days)),
            display_names_path=config.get("display_names_path", defaults.display_names_path),
            vendors_path=config.get("vendors_path", defaults.vendors_path),
            state_bucket=config.get("state_bucket") or environ.get("STATE_BUCKET") or None,
            feeds=feeds,
        )
