# flight_phase.py - Flight phase resolution from a schedule and an explicit "now"
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from config import Config
from models import Phase

logger = logging.getLogger(__name__)

PLANNING_HORIZON = timedelta(hours=24)

Timestamp = Union[datetime, str, int, float, None]


def parse_timestamp(value: Timestamp) -> Optional[datetime]:
    """Coerce ISO-8601 strings, epoch seconds or datetimes to aware UTC datetimes.

    Returns None for empty or unparseable values. Naive datetimes are taken as UTC.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        try:
            dt = datetime.fromtimestamp(value, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            logger.debug(f"Epoch out of range: {value!r}")
            return None
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            logger.debug(f"Unparseable timestamp: {value!r}")
            return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def resolve_phase(departure: Timestamp, arrival: Timestamp, now: datetime,
                  departure_window: timedelta = Config.DEPARTURE_WINDOW) -> Phase:
    """Derive the flight phase for ``now``.

    preflight  - no departure time, or more than 24h before it
    planning   - within 24h before departure
    departure  - within ``departure_window`` either side of departure
    enroute    - after departure, not yet past arrival
    arrival    - past the scheduled arrival
    """
    dep = parse_timestamp(departure)
    arr = parse_timestamp(arrival)
    now = parse_timestamp(now)

    if dep is None:
        return Phase.PREFLIGHT

    if arr is not None and now > arr:
        return Phase.ARRIVAL

    if departure_window > timedelta(0) and abs(now - dep) <= departure_window:
        return Phase.DEPARTURE

    if dep - now > PLANNING_HORIZON:
        return Phase.PREFLIGHT
    if now < dep:
        return Phase.PLANNING
    return Phase.ENROUTE
