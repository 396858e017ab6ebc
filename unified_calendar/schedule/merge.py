import re
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from unified_calendar.calendars.fetch_calendars import FeedResult, FeedSource
from unified_calendar.models import (
    ClassifiedEvent,
    PropertyTimeline,
    VendorAssignment,
)
from unified_calendar.schedule.classify import classify_all
from unified_calendar.schedule.generate_schedule import derive_cleaning_tasks


def property_sort_key(property_key: str):
    """Natural order, so property-2 comes before property-10."""
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", property_key)]


def resolve_display_name(property_key: str, sources: Sequence[FeedSource], display_names: Mapping[str, str]) -> str:
    """
    Name shown for a property: the configured display name, otherwise
    derived from its first feed ("Property AIRBNB - 12345").
    """
    name = display_names.get(property_key)
    if name:
        return re.sub(r"\s+", " ", name).strip()

    if not sources:
        return property_key

    source = sources[0]
    label = f"Property {source.platform.value.upper()}"
    if source.calendar_id:
        return f"{label} - {source.calendar_id}"
    return label


def merge_events(event_lists: Iterable[Iterable[ClassifiedEvent]]) -> List[ClassifiedEvent]:
    """
    Takes a list of event lists (from multiple feeds of one property)
    and merges them into one sorted list without exact duplicates.
    Events of different platforms on the same dates are all kept.
    """

    merged = []

    # Combine everything into one list
    for lst in event_lists:
        merged.extend(lst)

    # Sort by start date
    merged.sort(key=lambda e: (e.start, e.end, e.platform.value, e.event_id))

    unique = []
    seen = set()

    for e in merged:
        key = (e.platform, e.start, e.end, e.summary, e.description)

        if key not in seen:
            seen.add(key)
            unique.append(e)

    return unique


def assemble_timeline(
    property_key: str,
    display_name: str,
    events: Iterable[ClassifiedEvent],
    assignments: Mapping[str, VendorAssignment],
    failed_sources: Iterable[str] = (),
) -> PropertyTimeline:
    """Builds a property's timeline from its classified events and re-derives its cleanings."""
    merged = merge_events([events])
    cleanings = derive_cleaning_tasks(merged, property_key, assignments)

    return PropertyTimeline(
        property_key=property_key,
        display_name=display_name,
        events=tuple(merged),
        cleanings=tuple(cleanings),
        failed_sources=tuple(failed_sources),
    )


def build_timelines(
    results: Iterable[FeedResult],
    display_names: Mapping[str, str],
    assignments: Mapping[str, VendorAssignment],
) -> Dict[str, PropertyTimeline]:
    """
    Groups feed results by property and builds one timeline per property.
    A failed feed only empties its own contribution.
    """
    grouped: Dict[str, List[FeedResult]] = {}
    for result in results:
        grouped.setdefault(result.source.property_key, []).append(result)

    timelines = {}
    for property_key, property_results in grouped.items():
        events = []
        failed = []
        for result in property_results:
            if result.ok:
                events.extend(classify_all(result.events, result.source.platform, property_key))
            else:
                failed.append(result.source.url)

        sources = [r.source for r in property_results]
        timelines[property_key] = assemble_timeline(
            property_key,
            resolve_display_name(property_key, sources, display_names),
            events,
            assignments,
            failed,
        )

    return timelines


def replace_timelines(
    current: Iterable[PropertyTimeline],
    updated: Mapping[str, PropertyTimeline],
    keep: Optional[Iterable[str]] = None,
) -> List[PropertyTimeline]:
    """
    New ordered list of timelines where each property in `updated` is
    replaced whole. Current timelines are kept only when their key is in
    `keep` (all of them when `keep` is None).
    """
    keep = None if keep is None else set(keep)
    merged = {
        t.property_key: t
        for t in current
        if keep is None or t.property_key in keep
    }
    merged.update(updated)
    return [merged[key] for key in sorted(merged, key=property_sort_key)]
