"""Locale rendering for clinical dates and times."""

from datetime import date, datetime, time

from medtimeline.config import DISPLAY_DATE_FORMAT, DISPLAY_DATETIME_FORMAT, DISPLAY_TIME_FORMAT

# Time-of-day values carry no date; they are anchored here before formatting.
REFERENCE_DATE = date(1970, 1, 1)


def format_date(value: date) -> str:
    return value.strftime(DISPLAY_DATE_FORMAT)


def format_time_of_day(value: time) -> str:
    return datetime.combine(REFERENCE_DATE, value).strftime(DISPLAY_TIME_FORMAT)


def format_datetime(day: date, at: time) -> str:
    return datetime.combine(day, at).strftime(DISPLAY_DATETIME_FORMAT)
