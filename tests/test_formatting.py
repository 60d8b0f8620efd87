from datetime import date, time

from medtimeline.formatting import format_date, format_datetime, format_time_of_day


def test_format_date():
    assert format_date(date(2024, 3, 2)) == "02/03/2024"


def test_format_time_of_day():
    assert format_time_of_day(time(7, 5)) == "07:05"
    assert format_time_of_day(time(23, 59, 59)) == "23:59"


def test_format_datetime():
    assert format_datetime(date(2024, 1, 10), time(9, 0)) == "10/01/2024 09:00"


def test_event_display_uses_formatting_helpers():
    from medtimeline.models import events

    assert events.format_date.__module__ == "medtimeline.formatting"
    imported = {getattr(value, "__module__", None) or "" for value in vars(events).values()}
    assert not [name for name in imported if name.startswith("medtimeline.services")]
