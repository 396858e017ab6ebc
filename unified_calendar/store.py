"""
Timeline store: owns the current snapshot of every property timeline.

Readers call `get_timelines()` / `snapshot` and always get a complete
snapshot, possibly one refresh old. Writers (refreshes, renames, vendor
changes, new feeds) build new timelines aside and publish them by
swapping the snapshot reference; published snapshots are never modified.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from unified_calendar.calendars.fetch_calendars import FeedResult, FeedSource, ingest_feed
from unified_calendar.config.mappings import PropertyMappings
from unified_calendar.config.utils import Settings
from unified_calendar.models import Platform, PropertyTimeline, TimelineSnapshot
from unified_calendar.schedule.merge import (
    assemble_timeline,
    build_timelines,
    replace_timelines,
    resolve_display_name,
)

logger = logging.getLogger(__name__)


class TimelineStore:
    """Refreshes feeds into per-property timelines and serves the latest snapshot."""

    def __init__(
        self,
        mappings: PropertyMappings,
        sources: Iterable[FeedSource] = (),
        tz: ZoneInfo = ZoneInfo("Europe/Paris"),
        fetch_timeout: int = 10,
        max_workers: int = 8,
        ingest: Callable[..., FeedResult] = ingest_feed,
    ):
        self.mappings = mappings
        self.tz = tz
        self.fetch_timeout = fetch_timeout
        self.max_workers = max_workers
        self._ingest = ingest
        self._sources: Tuple[FeedSource, ...] = tuple(dict.fromkeys(sources))
        self._snapshot = TimelineSnapshot()
        self._publish_lock = threading.RLock()
        # snapshot version in which each property was last rebuilt from its feeds
        self._fetched_in: Dict[str, int] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "TimelineStore":
        mappings = PropertyMappings.load(
            settings.display_names_path,
            settings.vendors_path,
            settings.state_bucket,
        )
        return cls(
            mappings,
            sources=settings.feeds,
            tz=settings.tz,
            fetch_timeout=settings.fetch_timeout,
            max_workers=settings.max_workers,
        )

    # -----------------------------------------------------------
    # READ SIDE
    # -----------------------------------------------------------

    @property
    def snapshot(self) -> TimelineSnapshot:
        return self._snapshot

    @property
    def sources(self) -> Tuple[FeedSource, ...]:
        return self._sources

    def get_timelines(self) -> Tuple[PropertyTimeline, ...]:
        return self._snapshot.timelines

    def get_timeline(self, property_key: str) -> Optional[PropertyTimeline]:
        return self._snapshot.get(property_key)

    # -----------------------------------------------------------
    # REFRESH
    # -----------------------------------------------------------

    def refresh(self, property_keys: Optional[Iterable[str]] = None) -> TimelineSnapshot:
        """
        Fetches feeds and publishes rebuilt timelines.

        With no `property_keys` every registered feed is fetched and the
        snapshot is replaced by the result; otherwise only the given
        properties are rebuilt and every other timeline is carried over.

        Timelines fetched by another refresh that published while this one
        was fetching are newer and are kept, as are properties registered
        meanwhile.
        """
        keys = None if property_keys is None else set(property_keys)
        with self._publish_lock:
            started = self._snapshot.version
            sources = [s for s in self._sources if keys is None or s.property_key in keys]

        results = self._fetch_all(sources)

        with self._publish_lock:
            newer = {k for k, version in self._fetched_in.items() if version > started}
            results = [r for r in results if r.source.property_key not in newer]
            timelines = build_timelines(results, self.mappings.display_names, self.mappings.assignments)

            keep = None
            if keys is None:
                registered = {s.property_key for s in self._sources}
                fetched = {s.property_key for s in sources}
                keep = (registered - fetched) | newer

            snapshot = self._publish(timelines, keep=keep)
            for key in timelines:
                self._fetched_in[key] = snapshot.version

        failed = sum(1 for r in results if not r.ok)
        logger.info(
            f"Refresh v{snapshot.version}: {len(sources)} feeds, {failed} failed, "
            f"{len(timelines)} properties rebuilt"
        )
        return snapshot

    def _fetch_all(self, sources: List[FeedSource]) -> List[FeedResult]:
        if not sources:
            return []
        workers = max(1, min(self.max_workers, len(sources)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(
                lambda source: self._ingest(source, self.tz, timeout=self.fetch_timeout),
                sources,
            ))

    def _publish(self, timelines, keep: Optional[Iterable[str]] = None) -> TimelineSnapshot:
        """
        Swaps in a new snapshot where `timelines` replace their own
        properties. Other current timelines are carried over when their key
        is in `keep` (all of them when `keep` is None).
        """
        with self._publish_lock:
            current = self._snapshot
            ordered = replace_timelines(current.timelines, timelines, keep=keep)
            self._snapshot = TimelineSnapshot(
                version=current.version + 1,
                refreshed_at=datetime.now(timezone.utc),
                timelines=tuple(ordered),
            )
            return self._snapshot

    def _rederive(self, property_key: str) -> TimelineSnapshot:
        """Rebuilds a property's name and cleanings from its current events, without fetching."""
        with self._publish_lock:
            timeline = self.get_timeline(property_key)
            if timeline is None:
                return self._snapshot

            sources = [s for s in self._sources if s.property_key == property_key]
            rebuilt = assemble_timeline(
                property_key,
                resolve_display_name(property_key, sources, self.mappings.display_names),
                timeline.events,
                self.mappings.assignments,
                timeline.failed_sources,
            )
            return self._publish({property_key: rebuilt})

    # -----------------------------------------------------------
    # WRITE SIDE
    # -----------------------------------------------------------

    def register_feed(self, property_key: Optional[str], platform, url: str) -> FeedSource:
        """
        Adds a feed and immediately rebuilds its property.
        Raises InvalidInput (nothing registered) for a bad URL or platform.
        """
        if not property_key:
            property_key = f"property-{len(self._sources) + 1}"
        source = FeedSource.create(property_key, platform or Platform.AIRBNB, url)

        with self._publish_lock:
            if source not in self._sources:
                self._sources = self._sources + (source,)

        logger.info(f"Feed added for {source.property_key} ({source.platform.value})")
        self.refresh([source.property_key])
        return source

    def set_display_name(self, property_key: str, name: str):
        """
        Persists a new display name, then rebuilds that property's timeline.
        Raises ConfigWriteFailure (nothing changed) if the name cannot be saved.
        """
        self.mappings.set_display_name(property_key, name)
        self._rederive(property_key.strip())

    def set_vendor(self, property_key: str, vendor: str, offset: timedelta = timedelta(0)):
        """Persists a new cleaning vendor, then re-derives that property's cleanings."""
        self.mappings.set_vendor(property_key, vendor, offset)
        self._rederive(property_key.strip())

    # -----------------------------------------------------------
    # SCHEDULING
    # -----------------------------------------------------------

    def run_forever(self, interval_seconds: float = 3600, stop: Optional[threading.Event] = None):
        """
        Refreshes every `interval_seconds` until `stop` is set.
        A failing cycle is logged and the loop carries on.
        """
        stop = stop or threading.Event()
        while not stop.is_set():
            try:
                self.refresh()
            except Exception:
                logger.exception("Refresh cycle failed")
            logger.info(f"Next refresh in {interval_seconds / 60:.0f} min")
            stop.wait(interval_seconds)

    def start_background_refresh(self, interval_seconds: float = 3600) -> threading.Event:
        """Runs `run_forever` in a daemon thread; set the returned event to stop it."""
        stop = threading.Event()
        threading.Thread(
            target=self.run_forever,
            args=(interval_seconds, stop),
            daemon=True,
        ).start()
        return stop
