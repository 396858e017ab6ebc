"""Shared fixtures for unified_calendar tests."""
import pytest

from factories import TZ


@pytest.fixture
def tz():
    return TZ


@pytest.fixture
def sample_ical():
    """Airbnb-style feed: one reservation, one host block, one 2-hour blackout."""
    return "\r\n".join([
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Airbnb Inc//Hosting Calendar 0.8.8//EN",
        "BEGIN:VEVENT",
        "DTSTART;VALUE=DATE:20240601",
        "DTEND;VALUE=DATE:20240605",
        "UID:stay-1@airbnb.com",
        "SUMMARY:Reserved",
        "DESCRIPTION:Reservation URL: https://www.airbnb.com/hosting/reservations/details/HM123",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "DTSTART;VALUE=DATE:20240610",
        "DTEND;VALUE=DATE:20240612",
        "UID:block-1@airbnb.com",
        "SUMMARY:Airbnb (Not available)",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "DTSTART:20240615T100000Z",
        "DTEND:20240615T120000Z",
        "UID:blackout-1@airbnb.com",
        "SUMMARY:",
        "END:VEVENT",
        "END:VCALENDAR",
        "",
    ])
