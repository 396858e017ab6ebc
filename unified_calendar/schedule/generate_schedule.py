from typing import Dict, Iterable, List, Mapping
import csv

from unified_calendar.models import (
    CleaningTask,
    ClassifiedEvent,
    VendorAssignment,
    stable_id,
)

UNASSIGNED = "Unassigned"

SAME_DAY = "Cleaning: Checkin Same Day"
NOT_SAME_DAY = "Cleaning: Checkin Not Same Day"


def resolve_assignment(property_key: str, assignments: Mapping[str, VendorAssignment]) -> VendorAssignment:
    """
    Returns the vendor assignment of a property.
    Properties without one are cleaned by the UNASSIGNED sentinel, right at checkout.
    """
    assignment = assignments.get(property_key)
    if assignment is None:
        return VendorAssignment(vendor=UNASSIGNED)
    if not assignment.vendor:
        return VendorAssignment(vendor=UNASSIGNED, offset=assignment.offset)
    return assignment


def detect_changeovers(stays: Iterable[ClassifiedEvent], property_key: str, assignment: VendorAssignment) -> List[CleaningTask]:
    """
    Takes the stays of a property (any order, any platform).
    Generates one cleaning task per stay, scheduled at checkout +
    assignment.offset. Stays from two platforms ending at the same moment
    each keep their own task; see `distinct_cleanings` for the export view.

    The result only depends on the stays and the assignment, so rebuilding
    from the same input always gives the same tasks.
    """

    stays = sorted(
        (s for s in stays if s.is_stay and s.end is not None),
        key=lambda s: (s.end, s.start, s.event_id),
    )

    tasks = []

    for stay in stays:
        scheduled_at = stay.end + assignment.offset

        # Default type
        task_type = NOT_SAME_DAY

        # Check for a same-day check-in by another guest
        for other in stays:
            if other is not stay and other.start.date() == scheduled_at.date():
                task_type = SAME_DAY
                break

        tasks.append(CleaningTask(
            task_id=stable_id(property_key, stay.event_id, scheduled_at.isoformat()),
            property_key=property_key,
            scheduled_at=scheduled_at,
            assigned_vendor=assignment.vendor,
            task_type=task_type,
            stay_id=stay.event_id,
        ))

    return tasks


def derive_cleaning_tasks(events: Iterable[ClassifiedEvent], property_key: str, assignments: Mapping[str, VendorAssignment]) -> List[CleaningTask]:
    """Cleaning tasks of a property from its classified events and the vendor mapping."""
    stays = [e for e in events if e.is_stay]
    return detect_changeovers(stays, property_key, resolve_assignment(property_key, assignments))


def distinct_cleanings(tasks: Iterable[CleaningTask]) -> List[CleaningTask]:
    """One task per scheduled moment: a property is cleaned once even when two stays end together."""
    seen = set()
    distinct = []
    for task in tasks:
        if task.scheduled_at in seen:
            continue
        seen.add(task.scheduled_at)
        distinct.append(task)
    return distinct


def save_schedule_csv(tasks: List[CleaningTask], path="schedule.csv", property_name: str = ""):
    """
    Saves cleaning tasks to a CSV file.
    """

    fieldnames = ["id", "date", "property", "type", "assigned_cleaner"]

    rows: List[Dict[str, str]] = [
        {
            "id": task.task_id,
            "date": task.scheduled_at.strftime("%d/%m/%Y %H:%M"),
            "property": property_name or task.property_key,
            "type": task.task_type,
            "assigned_cleaner": task.assigned_vendor,
        }
        for task in tasks
    ]

    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)
