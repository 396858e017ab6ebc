import logging
from datetime import date, datetime, timedelta
from typing import Iterator

from icalendar import Calendar

from unified_calendar.errors import FetchFailure, ParseFailure
from unified_calendar.models import RawEvent

logger = logging.getLogger(__name__)


def _to_local(value, tz) -> datetime:
    """
    Normalize an iCal date or datetime to an aware datetime in `tz`.
    All-day dates become midnight local time.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=tz)
        return value.astimezone(tz)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=tz)
    raise ParseFailure(f"Unsupported date value: {value!r}")


def _decoded(component, name):
    """Decoded value of a date property, or None when absent. Raises ParseFailure on a broken value."""
    prop = component.get(name)
    if prop is None:
        return None
    try:
        return prop.dt
    except (ValueError, AttributeError) as e:
        raise ParseFailure(f"Event has an unusable {name}") from e


def parse_event(component, tz) -> RawEvent:
    """
    Converts one VEVENT component into a RawEvent.
    Raises ParseFailure when the event has no usable start/end.
    """
    raw_start = _decoded(component, "DTSTART")
    if raw_start is None:
        raise ParseFailure("Event has no usable DTSTART")

    start = _to_local(raw_start, tz)
    all_day = not isinstance(raw_start, datetime)

    raw_end = _decoded(component, "DTEND")
    duration = _decoded(component, "DURATION")
    if raw_end is not None:
        end = _to_local(raw_end, tz)
    elif isinstance(duration, timedelta):
        end = start + duration
    elif duration is not None:
        raise ParseFailure(f"Event has an unusable DURATION: {duration!r}")
    elif all_day:
        # RFC 5545: an all-day event without DTEND lasts one day
        end = start + timedelta(days=1)
    else:
        end = start

    if end < start:
        raise ParseFailure(f"Event ends before it starts ({start} > {end})")

    return RawEvent(
        summary=str(component.get("SUMMARY", "")),
        start=start,
        end=end,
        description=str(component.get("DESCRIPTION", "")),
        uid=str(component.get("UID", "")),
    )


def parse_ical(ical_text: str, tz, source: str = "") -> Iterator[RawEvent]:
    """
    Parses raw iCal text and lazily yields its events.

    A document that is not a calendar raises FetchFailure right away;
    individual events with broken fields are logged and skipped.
    """
    try:
        cal = Calendar.from_ical(ical_text)
    except (ValueError, IndexError) as e:
        raise FetchFailure(source or "<calendar>", f"malformed calendar: {e}") from e

    return _iter_events(cal, tz, source)


def _iter_events(cal, tz, source: str) -> Iterator[RawEvent]:
    for component in cal.walk("VEVENT"):
        try:
            yield parse_event(component, tz)
        except ParseFailure as e:
            logger.warning(
                f"Dropped event '{component.get('UID', '')}' from {source or 'calendar'}: {e}"
            )
