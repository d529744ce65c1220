from itertools import chain
from typing import Iterable, List

from govmetrics.core.entities.event import Event


def merge_chronological(*streams: Iterable[Event]) -> List[Event]:
    """
    Merge event streams into one time-ascending sequence.
    sorted() is stable, so ties keep stream order, then in-stream order.
    """
    return sorted(chain.from_iterable(streams), key=lambda e: e.time)
