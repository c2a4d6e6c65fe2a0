import re
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

_HHMM = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today_in(tz_name: str) -> date:
    return datetime.now(ZoneInfo(tz_name)).date()


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def parse_hhmm(value: str) -> time:
    match = _HHMM.match(value)
    if match is None:
        raise ValueError(f"not a 24h HH:mm time: {value!r}")
    return time(hour=int(match.group(1)), minute=int(match.group(2)))
