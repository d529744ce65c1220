from datetime import date, datetime, time, timezone
from typing import Dict, Iterable, List, TypeVar, Union

from govmetrics.core.entities.balance import SeriesPoint, Snapshot

T = TypeVar("T", bound=Union[Snapshot, SeriesPoint])


def day_start(moment: datetime) -> datetime:
    day = moment.astimezone(timezone.utc).date() if moment.tzinfo else moment.date()
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def collapse_daily(series: Iterable[T]) -> List[T]:
    """
    Keep the last point of each UTC calendar day, stamped at that day's
    midnight. Days appear in the order they were first seen.
    """
    by_day: Dict[date, T] = {}

    for point in series:
        start = day_start(point.time)
        # re-assigning an existing key keeps its original position
        by_day[start.date()] = point.model_copy(update={"time": start})

    return list(by_day.values())
