import argparse
import json
import logging
import os
import sys
from datetime import datetime, timedelta

from unified_calendar.config.utils import Settings, load_config
from unified_calendar.errors import CalendarError
from unified_calendar.grid.projector import project
from unified_calendar.grid.render import render_grid
from unified_calendar.models import DateWindow
from unified_calendar.schedule.generate_ics import save_schedule_ics, upload_to_gcs
from unified_calendar.schedule.generate_schedule import distinct_cleanings, save_schedule_csv
from unified_calendar.store import TimelineStore
from unified_calendar.utils.save_ics_index import append_ics_index, reset_ics_index


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """
    Configure root logging once for the CLI.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_logs: Emit one JSON object per line instead of plain text
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def cmd_refresh(store: TimelineStore, settings: Settings, args) -> int:
    snapshot = store.refresh()

    if args.json:
        print(json.dumps(snapshot.entries(), indent=2, ensure_ascii=False))
        return 0

    for timeline in snapshot.timelines:
        print(f"\n{'='*60}")
        print(f"{timeline.display_name} ({timeline.property_key})")
        print(f"{'='*60}")
        print(f"  → {len(timeline.stays)} stays, {len(timeline.blocks)} blocks")
        print(f"  → {len(timeline.cleanings)} cleaning tasks found.")
        for url in timeline.failed_sources:
            print(f"  → Feed failed: {url}")
        for task in timeline.cleanings:
            print(f"    {task.scheduled_at.strftime('%a %d %b %H:%M')} – {task.task_type} ({task.assigned_vendor})")

    print(f"\nAll properties processed (snapshot v{snapshot.version}).\n")
    return 0


def cmd_grid(store: TimelineStore, settings: Settings, args) -> int:
    store.refresh()

    if args.start:
        window = DateWindow(datetime.strptime(args.start, "%Y-%m-%d").date(), args.days or settings.window_days)
    else:
        window = DateWindow.today(settings.tz, args.days or settings.window_days)
    window = window.shifted(args.page)

    rows = project(store.get_timelines(), window, settings.checkout_day)
    print(render_grid(rows, window))
    return 0


def cmd_watch(store: TimelineStore, settings: Settings, args) -> int:
    minutes = args.interval_minutes or settings.refresh_interval_minutes
    store.run_forever(interval_seconds=minutes * 60)
    return 0


def cmd_export(store: TimelineStore, settings: Settings, args) -> int:
    snapshot = store.refresh()
    os.makedirs(args.out, exist_ok=True)

    index_path = os.path.join(args.out, "ics_index.txt")
    reset_ics_index(index_path)

    for timeline in snapshot.timelines:
        safe_name = timeline.display_name.replace(" ", "")
        tasks = distinct_cleanings(timeline.cleanings)

        csv_filename = os.path.join(args.out, f"{safe_name}.csv")
        save_schedule_csv(tasks, path=csv_filename, property_name=timeline.display_name)
        print(f"  → Saved CSV: {csv_filename}")

        ics_filename = os.path.join(args.out, f"{safe_name}.ics")
        public_url = save_schedule_ics(tasks, timeline.display_name, path=ics_filename, bucket_name=args.bucket)
        append_ics_index(timeline.property_key, timeline.display_name, public_url or ics_filename, output_path=index_path)
        print(f"  → Saved ICS: {ics_filename}")

    if args.bucket:
        upload_to_gcs(index_path, args.bucket, "all_ics_links.txt")
    return 0


def cmd_rename(store: TimelineStore, settings: Settings, args) -> int:
    store.set_display_name(args.property, args.name)
    print(f"✅ Name updated: {args.property} → {args.name}")
    return 0


def cmd_assign(store: TimelineStore, settings: Settings, args) -> int:
    offset = timedelta(days=args.offset_days, hours=args.offset_hours)
    store.set_vendor(args.property, args.vendor, offset)
    print(f"✅ Vendor updated: {args.property} → {args.vendor} (+{offset})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="unified-calendar",
        description="Unified Airbnb / Booking.com calendar with cleaning schedule",
    )
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "INFO"))
    parser.add_argument("--json-logs", action="store_true", help="Log as JSON lines")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("refresh", help="Fetch every feed once and print the timelines")
    p.add_argument("--json", action="store_true", help="Print all timeline entries as JSON")
    p.set_defaults(func=cmd_refresh)

    p = sub.add_parser("grid", help="Print the day-by-property grid")
    p.add_argument("--start", help="First day (YYYY-MM-DD), default today")
    p.add_argument("--days", type=int, help="Number of days shown")
    p.add_argument("--page", type=int, default=0, help="Pages of --days to move forward (negative: back)")
    p.set_defaults(func=cmd_grid)

    p = sub.add_parser("watch", help="Refresh on a fixed interval until interrupted")
    p.add_argument("--interval-minutes", type=int)
    p.set_defaults(func=cmd_watch)

    p = sub.add_parser("export", help="Write cleaning schedules as CSV and ICS")
    p.add_argument("--out", default="exports")
    p.add_argument("--bucket", help="Also upload ICS files to this Cloud Storage bucket")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("rename", help="Set a property's display name")
    p.add_argument("property")
    p.add_argument("name")
    p.set_defaults(func=cmd_rename)

    p = sub.add_parser("assign", help="Set a property's cleaning vendor")
    p.add_argument("property")
    p.add_argument("vendor")
    p.add_argument("--offset-days", type=float, default=0)
    p.add_argument("--offset-hours", type=float, default=0)
    p.set_defaults(func=cmd_assign)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.json_logs)

    settings = Settings.from_config(load_config(args.config))
    store = TimelineStore.from_settings(settings)

    try:
        return args.func(store, settings, args)
    except CalendarError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
