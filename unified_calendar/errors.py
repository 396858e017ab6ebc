"""Errors raised while building the unified booking calendar."""


class CalendarError(Exception):
    """Base class for every error raised by unified_calendar."""


class FetchFailure(CalendarError):
    """
    A feed could not be downloaded, read or parsed as a calendar.
    The feed contributes no events for the current refresh cycle.
    """

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Could not fetch calendar from {source}: {reason}")


class ParseFailure(CalendarError):
    """A single calendar event has unusable fields (e.g. no start date)."""


class ConfigWriteFailure(CalendarError):
    """A display-name or vendor mapping could not be persisted."""


class InvalidInput(CalendarError):
    """A registration or rename request was rejected before any state changed."""
