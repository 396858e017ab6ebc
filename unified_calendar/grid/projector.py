"""
Day-by-property grid projection.

For each property and day of a window the projector decides one verdict:
blocked (a placeholder or manual block covers the day) wins over occupied
(a stay covers the day), which wins over empty. A cleaning badge is added
on top of any verdict when a cleaning is scheduled that day.
"""
from datetime import date, datetime, time, timedelta
from typing import Iterable, List

from unified_calendar.models import (
    CellState,
    CheckoutDay,
    CleaningBadge,
    ClassifiedEvent,
    DateWindow,
    GridCell,
    GridRow,
    Occupancy,
    Platform,
    PropertyTimeline,
)

VENDOR_GLYPHS = {
    "cleansud": "☀️",
    "portos": "🐟",
    "naira": "💇",
    "proconcept": "🥊",
}
DEFAULT_GLYPH = "🧼"


def vendor_glyph(vendor: str) -> str:
    """Badge of a vendor, keyed by the first word of its name ("Portos Nettoyage" -> portos)."""
    words = (vendor or "").strip().lower().split()
    if not words:
        return DEFAULT_GLYPH
    return VENDOR_GLYPHS.get(words[0], DEFAULT_GLYPH)


def stay_covers(stay: ClassifiedEvent, day: date, checkout_day: CheckoutDay = CheckoutDay.INCLUSIVE) -> bool:
    start, end = stay.start_date, stay.end_date
    if checkout_day is CheckoutDay.INCLUSIVE:
        return start <= day <= end
    return start <= day < end or day == start


def block_covers(block: ClassifiedEvent, day: date) -> bool:
    """
    True when the block's [start, end) interval overlaps the day.
    Blocks always use their real interval; CheckoutDay only applies to stays.
    """
    if block.start == block.end:
        return block.start_date == day
    day_start = datetime.combine(day, time.min, tzinfo=block.start.tzinfo)
    day_end = day_start + timedelta(days=1)
    return block.start < day_end and block.end > day_start


def project_cell(timeline: PropertyTimeline, day: date, checkout_day: CheckoutDay = CheckoutDay.INCLUSIVE) -> GridCell:
    block_reasons = tuple(sorted(
        {e.kind for e in timeline.blocks if block_covers(e, day)},
        key=lambda kind: kind.value,
    ))

    badge = None
    for task in timeline.cleanings:
        if task.scheduled_date == day:
            badge = CleaningBadge(glyph=vendor_glyph(task.assigned_vendor), vendor=task.assigned_vendor)
            break

    if block_reasons:
        return GridCell(
            property_key=timeline.property_key,
            day=day,
            state=CellState.BLOCKED,
            block_reasons=block_reasons,
            badge=badge,
        )

    occupancy = []
    stays = timeline.stays
    for platform in Platform:
        covering = [s for s in stays if s.platform is platform and stay_covers(s, day, checkout_day)]
        if not covering:
            continue
        occupancy.append(Occupancy(
            platform=platform,
            is_entry=any(s.start_date == day for s in covering),
            is_exit=any(s.end_date == day for s in covering),
            guest_labels=tuple(s.guest_label for s in covering),
        ))

    return GridCell(
        property_key=timeline.property_key,
        day=day,
        state=CellState.OCCUPIED if occupancy else CellState.EMPTY,
        occupancy=tuple(occupancy),
        badge=badge,
    )


def project(
    timelines: Iterable[PropertyTimeline],
    window: DateWindow,
    checkout_day: CheckoutDay = CheckoutDay.INCLUSIVE,
) -> List[GridRow]:
    """One row per property, one cell per day of the window."""
    days = window.days
    return [
        GridRow(
            property_key=timeline.property_key,
            display_name=timeline.display_name,
            cells=tuple(project_cell(timeline, day, checkout_day) for day in days),
        )
        for timeline in timelines
    ]
