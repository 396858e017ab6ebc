import logging
import os
from datetime import timedelta
from typing import List, Optional

from icalendar import Calendar, Event
from google.cloud import storage

from unified_calendar.models import CleaningTask

logger = logging.getLogger(__name__)

# Length of the cleaning slot shown in calendar apps
CLEANING_DURATION = timedelta(hours=3)


def upload_to_gcs(local_path, bucket_name, object_name):
    client = storage.Client()
    bucket = client.bucket(bucket_name)
    blob = bucket.blob(object_name)
    blob.upload_from_filename(local_path)
    return f"https://storage.googleapis.com/{bucket_name}/{object_name}"


def build_schedule_calendar(tasks: List[CleaningTask], property_name: str) -> Calendar:
    cal = Calendar()
    cal.add("prodid", "-//Unified Calendar//Cleaning Schedule//EN")
    cal.add("version", "2.0")

    # This sets the calendar name users see in Google/Apple Calendar
    cal.add("X-WR-CALNAME", f"{property_name} – Cleaning Schedule")

    for task in tasks:
        event = Event()

        event.add("uid", task.task_id)
        event.add("summary", f"{task.task_type} – {property_name}")
        event.add("description", f"Cleaner: {task.assigned_vendor}")
        event.add("dtstart", task.scheduled_at)
        event.add("dtend", task.scheduled_at + CLEANING_DURATION)

        cal.add_component(event)

    return cal


def save_schedule_ics(tasks: List[CleaningTask], property_name: str, path: str, bucket_name: Optional[str] = None):
    """
    Writes the cleaning schedule of a property as an ICS file.
    When a bucket is given the file is also uploaded and its public URL returned.
    """
    cal = build_schedule_calendar(tasks, property_name)

    # Write to local file first
    with open(path, "wb") as f:
        f.write(cal.to_ical())

    if not bucket_name:
        return None

    public_url = upload_to_gcs(path, bucket_name, os.path.basename(path))
    logger.info(f"Uploaded to: {public_url}")
    return public_url
