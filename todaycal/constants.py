"""Shared constants for todaycal."""

# Title used when a VEVENT has no SUMMARY
UNTITLED_EVENT_TITLE = "Untitled Event"

ALL_DAY_LABEL = "All day"

# Domain substrings that identify a meeting-join URL
CONFERENCE_PLATFORM_DOMAINS: tuple[str, ...] = (
    "zoom.us",
    "meet.google.com",
    "teams.microsoft.com",
    "webex.com",
)

# Palette handed out round-robin to sources configured without a color
DEFAULT_CALENDAR_COLORS: tuple[str, ...] = (
    "#e74c3c",  # Red
    "#3498db",  # Blue
    "#2ecc71",  # Green
    "#f39c12",  # Orange
    "#9b59b6",  # Purple
    "#1abc9c",  # Teal
    "#e91e63",  # Pink
    "#ff9800",  # Amber
)

DEFAULT_REFRESH_INTERVAL_MINUTES = 30
DEFAULT_MAX_RECURRENCE_ITERATIONS = 1000
