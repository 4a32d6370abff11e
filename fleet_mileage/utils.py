import logging
import datetime
from typing import Any, Optional

from dateutil import parser

from fleet_mileage.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: Optional[str] = None):
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )
    # SQL echo is noisy during bulk repairs
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def parse_fecha(value: Any) -> Optional[datetime.datetime]:
    """Accepts datetimes or ISO-like strings; returns a tz-aware UTC datetime or None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, datetime.date):
        parsed = datetime.datetime.combine(value, datetime.time.min)
    else:
        try:
            parsed = parser.isoparse(str(value))
        except (ValueError, TypeError):
            try:
                parsed = parser.parse(str(value))
            except (ValueError, TypeError, OverflowError):
                return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)
