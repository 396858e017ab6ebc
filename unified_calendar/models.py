"""Data models for the unified booking calendar."""
import hashlib
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo


class Platform(str, Enum):
    """Booking platforms publishing a calendar feed per property."""
    AIRBNB = "airbnb"
    BOOKING = "booking"

    @classmethod
    def parse(cls, value) -> "Platform":
        """
        Accepts a Platform or its name/value in any case ("Airbnb", "BOOKING").
        Raises ValueError for anything else.
        """
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for platform in cls:
            if platform.value == text:
                return platform
        raise ValueError(f"Unknown platform: {value!r}")


# Platform whose hosts mark unavailability by hand ("Not available" blocks)
PRIMARY_PLATFORM = Platform.AIRBNB


class EventKind(str, Enum):
    """What a calendar event really means for the property."""
    STAY = "stay"
    PLATFORM_PLACEHOLDER = "platform-placeholder"
    MANUAL_BLOCK = "manual-block"


class CheckoutDay(str, Enum):
    """
    Whether a stay's checkout day is painted as occupied on the grid.

    INCLUSIVE paints both the arrival and the departure day, so a departure
    and the next arrival on the same day are both visible. EXCLUSIVE treats
    the stay as ending at the start of the checkout day.
    """
    INCLUSIVE = "inclusive"
    EXCLUSIVE = "exclusive"


class CellState(str, Enum):
    EMPTY = "empty"
    OCCUPIED = "occupied"
    BLOCKED = "blocked"


def stable_id(*parts) -> str:
    """
    Generate a deterministic identifier from the given parts (SHA256 hex),
    so that rebuilding from unchanged feeds yields identical ids.
    """
    composite = "|".join(str(part) for part in parts)
    return hashlib.sha256(composite.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class RawEvent:
    """One VEVENT read from a feed, with start/end in the local timezone."""
    summary: str
    start: datetime
    end: datetime
    description: str = ""
    uid: str = ""

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class ClassifiedEvent:
    """A RawEvent tagged with its property, platform and kind."""
    event_id: str
    property_key: str
    platform: Platform
    kind: EventKind
    guest_label: str
    summary: str
    start: datetime
    end: datetime
    description: str = ""
    uid: str = ""

    @property
    def is_stay(self) -> bool:
        return self.kind is EventKind.STAY

    @property
    def is_blocking(self) -> bool:
        return self.kind is not EventKind.STAY

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()

    def to_dict(self) -> dict:
        return {
            "id": self.event_id,
            "type": self.kind.value,
            "propertyKey": self.property_key,
            "source": self.platform.value,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "guest": self.guest_label,
            "summary": self.summary,
            "description": self.description,
        }


@dataclass(frozen=True)
class VendorAssignment:
    """Cleaning vendor of a property and how long after checkout it cleans."""
    vendor: str
    offset: timedelta = timedelta(0)


@dataclass(frozen=True)
class CleaningTask:
    """Housekeeping derived from the checkout of one stay."""
    task_id: str
    property_key: str
    scheduled_at: datetime
    assigned_vendor: str
    task_type: str
    stay_id: str

    @property
    def scheduled_date(self) -> date:
        return self.scheduled_at.date()

    def to_dict(self) -> dict:
        return {
            "id": self.task_id,
            "type": "cleaning",
            "propertyKey": self.property_key,
            "start": self.scheduled_at.isoformat(),
            "date": self.scheduled_date.isoformat(),
            "assignedCleaner": self.assigned_vendor,
            "cleaningType": self.task_type,
            "bookingId": self.stay_id,
        }


@dataclass(frozen=True)
class PropertyTimeline:
    """Every classified event and cleaning task of one property for one refresh cycle."""
    property_key: str
    display_name: str
    events: Tuple[ClassifiedEvent, ...] = ()
    cleanings: Tuple[CleaningTask, ...] = ()
    failed_sources: Tuple[str, ...] = ()

    @property
    def stays(self) -> List[ClassifiedEvent]:
        return [e for e in self.events if e.is_stay]

    @property
    def blocks(self) -> List[ClassifiedEvent]:
        return [e for e in self.events if e.is_blocking]

    def entries(self) -> List[dict]:
        """Flat list of the timeline's events and cleanings, each tagged with the property name."""
        entries = [e.to_dict() for e in self.events]
        entries.extend(c.to_dict() for c in self.cleanings)
        for entry in entries:
            entry["name"] = self.display_name
        return entries


@dataclass(frozen=True)
class TimelineSnapshot:
    """
    Complete set of timelines published by one refresh.
    Never modified: a refresh publishes a new snapshot with a higher version.
    """
    version: int = 0
    refreshed_at: Optional[datetime] = None
    timelines: Tuple[PropertyTimeline, ...] = ()

    def get(self, property_key: str) -> Optional[PropertyTimeline]:
        for timeline in self.timelines:
            if timeline.property_key == property_key:
                return timeline
        return None

    def entries(self) -> List[dict]:
        entries = []
        for timeline in self.timelines:
            entries.extend(timeline.entries())
        return entries


@dataclass(frozen=True)
class Occupancy:
    """A platform's stay painted on one grid day."""
    platform: Platform
    is_entry: bool = False
    is_exit: bool = False
    guest_labels: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CleaningBadge:
    glyph: str
    vendor: str


@dataclass(frozen=True)
class GridCell:
    """Rendering verdict for one property on one calendar day."""
    property_key: str
    day: date
    state: CellState = CellState.EMPTY
    occupancy: Tuple[Occupancy, ...] = ()
    block_reasons: Tuple[EventKind, ...] = ()
    badge: Optional[CleaningBadge] = None

    @property
    def is_sunday(self) -> bool:
        return self.day.weekday() == 6

    @property
    def block_reason(self) -> Optional[EventKind]:
        """Manual blocks win over platform placeholders for the visual treatment."""
        if EventKind.MANUAL_BLOCK in self.block_reasons:
            return EventKind.MANUAL_BLOCK
        if self.block_reasons:
            return EventKind.PLATFORM_PLACEHOLDER
        return None

    @property
    def is_entry(self) -> bool:
        return any(o.is_entry for o in self.occupancy)

    @property
    def is_exit(self) -> bool:
        return any(o.is_exit for o in self.occupancy)

    def occupancy_for(self, platform: Platform) -> Optional[Occupancy]:
        for occupancy in self.occupancy:
            if occupancy.platform is platform:
                return occupancy
        return None


@dataclass(frozen=True)
class GridRow:
    property_key: str
    display_name: str
    cells: Tuple[GridCell, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DateWindow:
    """A run of consecutive days shown on the grid, paged by its own length."""
    start: date
    length: int = 30

    @classmethod
    def today(cls, tz: ZoneInfo, length: int = 30) -> "DateWindow":
        return cls(datetime.now(tz).date(), length)

    @property
    def days(self) -> List[date]:
        return [self.start + timedelta(days=i) for i in range(self.length)]

    @property
    def end(self) -> date:
        """Last day shown (inclusive)."""
        return self.start + timedelta(days=self.length - 1)

    def next(self) -> "DateWindow":
        return DateWindow(self.start + timedelta(days=self.length), self.length)

    def previous(self) -> "DateWindow":
        return DateWindow(self.start - timedelta(days=self.length), self.length)

    def shifted(self, pages: int) -> "DateWindow":
        return DateWindow(self.start + timedelta(days=self.length * pages), self.length)
