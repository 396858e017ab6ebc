"""Unit tests for TimelineStore."""
import threading
from datetime import timedelta
from unittest.mock import patch

import pytest
import responses

from factories import TZ, at, raw_event
from unified_calendar.calendars.fetch_calendars import FeedResult, FeedSource
from unified_calendar.config.mappings import PropertyMappings
from unified_calendar.errors import ConfigWriteFailure, InvalidInput
from unified_calendar.models import Platform
from unified_calendar.store import TimelineStore

URL_1 = "https://www.airbnb.com/calendar/ical/111.ics"
URL_2 = "https://www.airbnb.com/calendar/ical/222.ics"
URL_2B = "https://ical.booking.com/v1/export?t=222"


class FakeFeeds:
    """Stands in for ingest_feed: serves canned events per URL, fails listed URLs."""

    def __init__(self, events_by_url):
        self.events_by_url = events_by_url
        self.failing = set()
        self.calls = []

    def __call__(self, source, tz, timeout=10):
        self.calls.append(source.url)
        if source.url in self.failing:
            return FeedResult(source=source, error="timeout")
        return FeedResult(source=source, events=tuple(self.events_by_url.get(source.url, ())))


@pytest.fixture
def mappings(tmp_path):
    return PropertyMappings(str(tmp_path / "names.json"), str(tmp_path / "vendors.json"))


@pytest.fixture
def feeds():
    return FakeFeeds({
        URL_1: [raw_event(at(2024, 6, 1), at(2024, 6, 5))],
        URL_2: [raw_event(at(2024, 6, 2), at(2024, 6, 4), summary="Guest 2")],
        URL_2B: [raw_event(at(2024, 6, 4), at(2024, 6, 7), summary="Guest 3")],
    })


@pytest.fixture
def store(mappings, feeds):
    sources = [
        FeedSource("property-1", Platform.AIRBNB, URL_1),
        FeedSource("property-2", Platform.AIRBNB, URL_2),
        FeedSource("property-2", Platform.BOOKING, URL_2B),
    ]
    return TimelineStore(mappings, sources, tz=TZ, ingest=feeds)


class TestRefresh:
    """Test cases for refresh()."""

    def test_initial_snapshot_is_empty(self, store):
        """Test that readers get an empty snapshot before the first refresh."""
        assert store.get_timelines() == ()
        assert store.snapshot.version == 0

    def test_refresh_builds_all_timelines(self, store):
        """Test that a refresh builds one timeline per property."""
        snapshot = store.refresh()

        assert snapshot.version == 1
        assert [t.property_key for t in store.get_timelines()] == ["property-1", "property-2"]
        assert len(store.get_timeline("property-2").events) == 2
        assert len(store.get_timeline("property-2").cleanings) == 2

    def test_failed_feed_leaves_other_properties_unchanged(self, store, feeds):
        """Test that one failing feed does not touch other properties' timelines."""
        store.refresh()
        before = store.get_timeline("property-1")

        feeds.failing.add(URL_2)
        store.refresh()

        assert store.get_timeline("property-1") == before
        property_2 = store.get_timeline("property-2")
        assert [e.platform for e in property_2.events] == [Platform.BOOKING]
        assert property_2.failed_sources == (URL_2,)

    def test_snapshots_are_replaced_not_mutated(self, store):
        """Test that an old snapshot object is unaffected by later refreshes."""
        first = store.refresh()
        first_timelines = first.timelines

        second = store.refresh()

        assert first is not second
        assert first.timelines is first_timelines
        assert second.version == first.version + 1

    def test_partial_refresh(self, store, feeds):
        """Test that refreshing one property only fetches its feeds."""
        store.refresh()
        feeds.calls.clear()

        store.refresh(["property-1"])

        assert feeds.calls == [URL_1]
        assert len(store.get_timelines()) == 2

    def test_refresh_is_repeatable(self, store):
        """Test that unchanged feeds give identical timelines."""
        store.refresh()
        first = store.get_timelines()

        store.refresh()

        assert store.get_timelines() == first


class TestRegisterFeed:
    """Test cases for register_feed()."""

    def test_register_triggers_refresh(self, store, feeds):
        """Test that a new feed is fetched right away."""
        url = "https://www.airbnb.com/calendar/ical/333.ics"
        feeds.events_by_url[url] = [raw_event(at(2024, 6, 10), at(2024, 6, 12))]

        source = store.register_feed("property-3", "airbnb", url)

        assert source in store.sources
        timeline = store.get_timeline("property-3")
        assert timeline.display_name == "Property AIRBNB - 333"
        assert len(timeline.events) == 1

    def test_auto_property_key(self, store):
        """Test that a missing property key gets the next free index."""
        source = store.register_feed(None, None, "https://www.airbnb.com/calendar/ical/444.ics")

        assert source.property_key == "property-4"
        assert source.platform is Platform.AIRBNB

    def test_invalid_registration(self, store):
        """Test that an invalid URL registers nothing."""
        with pytest.raises(InvalidInput):
            store.register_feed("property-9", "airbnb", "not-a-url")

        assert len(store.sources) == 3


class TestSetDisplayName:
    """Test cases for set_display_name()."""

    def test_rename_rebuilds_timeline(self, store, feeds):
        """Test that a rename is visible without fetching again."""
        store.refresh()
        feeds.calls.clear()
        before = store.get_timeline("property-1")

        store.set_display_name("property-1", "Beach House")

        after = store.get_timeline("property-1")
        assert after.display_name == "Beach House"
        assert after.events == before.events
        assert feeds.calls == []

    def test_failed_write_changes_nothing(self, store):
        """Test that a failed persist leaves the snapshot untouched."""
        store.refresh()
        snapshot = store.snapshot

        with patch(
            "unified_calendar.config.mappings.save_mapping",
            side_effect=ConfigWriteFailure("disk full"),
        ):
            with pytest.raises(ConfigWriteFailure):
                store.set_display_name("property-1", "Beach House")

        assert store.snapshot is snapshot
        assert "property-1" not in store.mappings.display_names


class TestSetVendor:
    """Test cases for set_vendor()."""

    def test_vendor_change_rederives_cleanings(self, store):
        """Test that cleanings follow the new vendor and offset."""
        store.refresh()

        store.set_vendor("property-1", "Portos Nettoyage", timedelta(days=1))

        task = store.get_timeline("property-1").cleanings[0]
        assert task.assigned_vendor == "Portos Nettoyage"
        assert task.scheduled_date == at(2024, 6, 6).date()


class TestRunForever:
    """Test cases for the refresh loop."""

    def test_loop_survives_failing_cycle(self, store):
        """Test that an exception in one cycle does not stop the loop."""
        stop = threading.Event()
        calls = []

        def refresh():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            stop.set()

        with patch.object(store, "refresh", side_effect=refresh):
            store.run_forever(interval_seconds=0, stop=stop)

        assert len(calls) == 2


class TestWithHttpFeeds:
    """End-to-end refresh through real HTTP mocking."""

    @responses.activate
    def test_refresh_with_one_feed_down(self, mappings, sample_ical):
        """Test a refresh where one property's feed is unreachable."""
        responses.add(responses.GET, URL_1, body=sample_ical, status=200)
        responses.add(responses.GET, URL_2, status=500)
        store = TimelineStore(mappings, [
            FeedSource("property-1", Platform.AIRBNB, URL_1),
            FeedSource("property-2", Platform.AIRBNB, URL_2),
        ], tz=TZ)

        store.refresh()

        property_1 = store.get_timeline("property-1")
        assert [e.kind.value for e in property_1.events] == ["stay", "manual-block", "platform-placeholder"]
        assert len(property_1.cleanings) == 1
        property_2 = store.get_timeline("property-2")
        assert property_2.events == ()
        assert property_2.failed_sources == (URL_2,)

    @responses.activate
    def test_broken_event_does_not_abort_refresh(self, mappings, sample_ical):
        """Test that an event with an unreadable date only drops that event."""
        broken_feed = "\r\n".join([
            "BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//Test//EN",
            "BEGIN:VEVENT", "DTSTART:garbage", "DTEND;VALUE=DATE:20240605", "SUMMARY:Broken", "END:VEVENT",
            "BEGIN:VEVENT", "DTSTART;VALUE=DATE:20240610", "DTEND;VALUE=DATE:20240612", "SUMMARY:Guest", "END:VEVENT",
            "END:VCALENDAR",
        ]) + "\r\n"
        responses.add(responses.GET, URL_1, body=sample_ical, status=200)
        responses.add(responses.GET, URL_2, body=broken_feed, status=200)
        store = TimelineStore(mappings, [
            FeedSource("property-1", Platform.AIRBNB, URL_1),
            FeedSource("property-2", Platform.AIRBNB, URL_2),
        ], tz=TZ)

        snapshot = store.refresh()

        assert snapshot.version == 1
        assert len(store.get_timeline("property-1").events) == 3
        assert [e.guest_label for e in store.get_timeline("property-2").events] == ["Guest"]


class BlockingFeeds(FakeFeeds):
    """FakeFeeds whose fetch of one URL waits until released."""

    def __init__(self, events_by_url, blocked_url):
        super().__init__(events_by_url)
        self.blocked_url = blocked_url
        self.entered = threading.Event()
        self.release = threading.Event()

    def __call__(self, source, tz, timeout=10):
        if source.url == self.blocked_url:
            self.entered.set()
            self.release.wait(5)
        return super().__call__(source, tz, timeout)


class TestConcurrentWrites:
    """Writes made while a full refresh is fetching survive its publish."""

    @pytest.fixture
    def slow_store(self, mappings):
        feeds = BlockingFeeds({URL_1: [raw_event(at(2024, 6, 1), at(2024, 6, 5))]}, blocked_url=URL_1)
        store = TimelineStore(mappings, [FeedSource("property-1", Platform.AIRBNB, URL_1)], tz=TZ, ingest=feeds)
        return store, feeds

    def _start_refresh(self, store, feeds):
        thread = threading.Thread(target=store.refresh)
        thread.start()
        assert feeds.entered.wait(5)
        return thread

    def test_feed_registered_during_refresh_is_kept(self, slow_store):
        """Test that a property registered mid-refresh is still shown afterwards."""
        store, feeds = slow_store
        url = "https://www.airbnb.com/calendar/ical/999.ics"
        feeds.events_by_url[url] = [raw_event(at(2024, 6, 10), at(2024, 6, 12))]
        thread = self._start_refresh(store, feeds)

        store.register_feed("property-9", "airbnb", url)
        feeds.release.set()
        thread.join(5)

        assert [t.property_key for t in store.get_timelines()] == ["property-1", "property-9"]
        assert len(store.get_timeline("property-9").events) == 1

    def test_newer_partial_refresh_is_not_overwritten(self, mappings):
        """Test that events fetched by a later partial refresh win over an older full refresh."""
        feeds = BlockingFeeds({
            URL_1: [raw_event(at(2024, 6, 1), at(2024, 6, 5))],
            URL_2: [raw_event(at(2024, 6, 2), at(2024, 6, 4), summary="Old guest")],
        }, blocked_url=URL_1)
        # one worker fetches property-2, then waits on property-1
        store = TimelineStore(mappings, [
            FeedSource("property-2", Platform.AIRBNB, URL_2),
            FeedSource("property-1", Platform.AIRBNB, URL_1),
        ], tz=TZ, max_workers=1, ingest=feeds)
        thread = self._start_refresh(store, feeds)
        feeds.events_by_url[URL_2] = [raw_event(at(2024, 6, 8), at(2024, 6, 9), summary="New guest")]

        store.refresh(["property-2"])
        feeds.release.set()
        thread.join(5)

        assert [e.guest_label for e in store.get_timeline("property-2").events] == ["New guest"]
        assert store.get_timeline("property-1") is not None

    def test_rename_during_refresh_is_kept(self, slow_store):
        """Test that a rename made mid-refresh is not reverted by its publish."""
        store, feeds = slow_store
        thread = self._start_refresh(store, feeds)

        store.set_display_name("property-1", "Beach House")
        feeds.release.set()
        thread.join(5)

        assert store.get_timeline("property-1").display_name == "Beach House"
