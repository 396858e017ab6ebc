"""
Event classification.

Feeds give no reliable meaning to their events: Airbnb and Booking.com
publish guest stays, their own short internal blackouts and host-entered
blocks in the same shape. Every event is tagged here, once, by the rule
table below (first matching rule wins, otherwise the event is a stay).
"""
from datetime import timedelta
from typing import Callable, Iterable, List, Tuple

from unified_calendar.models import (
    PRIMARY_PLATFORM,
    ClassifiedEvent,
    EventKind,
    Platform,
    RawEvent,
    stable_id,
)

PLACEHOLDER_MAX_DURATION = timedelta(hours=20)

# Summaries meaning "unit unavailable" (English / French)
UNAVAILABLE_PHRASES = frozenset({
    "not available",
    "airbnb (not available)",
    "non disponible",
    "indisponible",
})

MANUAL_BLOCK_PHRASE = "not available"


def normalize_summary(summary: str) -> str:
    return (summary or "").strip().lower()


def is_platform_placeholder(raw: RawEvent, platform: Platform) -> bool:
    """Short blackout with no guest name, emitted by the platform itself."""
    if raw.duration >= PLACEHOLDER_MAX_DURATION:
        return False
    summary = normalize_summary(raw.summary)
    return not summary or summary in UNAVAILABLE_PHRASES


def is_manual_block(raw: RawEvent, platform: Platform) -> bool:
    """Host-entered 'Not available' block: primary platform, no description."""
    return (
        platform is PRIMARY_PLATFORM
        and MANUAL_BLOCK_PHRASE in normalize_summary(raw.summary)
        and not (raw.description or "").strip()
    )


CLASSIFICATION_RULES: Tuple[Tuple[EventKind, Callable[[RawEvent, Platform], bool]], ...] = (
    (EventKind.PLATFORM_PLACEHOLDER, is_platform_placeholder),
    (EventKind.MANUAL_BLOCK, is_manual_block),
)


def classify_kind(raw: RawEvent, platform: Platform) -> EventKind:
    for kind, matches in CLASSIFICATION_RULES:
        if matches(raw, platform):
            return kind
    return EventKind.STAY


def classify(raw: RawEvent, platform: Platform, property_key: str) -> ClassifiedEvent:
    platform = Platform.parse(platform)
    kind = classify_kind(raw, platform)

    event_id = stable_id(
        property_key,
        platform.value,
        raw.uid,
        raw.start.isoformat(),
        raw.end.isoformat(),
        raw.summary,
    )

    return ClassifiedEvent(
        event_id=event_id,
        property_key=property_key,
        platform=platform,
        kind=kind,
        guest_label=raw.summary,
        summary=raw.summary,
        start=raw.start,
        end=raw.end,
        description=raw.description,
        uid=raw.uid,
    )


def classify_all(raws: Iterable[RawEvent], platform: Platform, property_key: str) -> List[ClassifiedEvent]:
    return [classify(raw, platform, property_key) for raw in raws]
