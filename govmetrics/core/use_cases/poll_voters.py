from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List

from govmetrics.core.entities.poll import PollVoterCount, PollVotersData
from govmetrics.core.use_cases.event_normalizer import as_utc


def poll_month(poll: PollVoterCount) -> str:
    start = as_utc(poll.startDate)
    return f"{start.year}-{start.month}"


def average_voters_by_month(polls: Iterable[PollVoterCount]) -> List[PollVotersData]:
    """
    Mean unique voters per start month. Each month reports the first poll
    id seen for it; months keep first-seen order.
    """
    groups: Dict[str, List[PollVoterCount]] = {}
    for poll in polls:
        groups.setdefault(poll_month(poll), []).append(poll)

    result = []
    for month, month_polls in groups.items():
        mean = Decimal(sum(p.uniqueVoters for p in month_polls)) / len(month_polls)
        result.append(PollVotersData(
            month=month,
            pollId=month_polls[0].pollId,
            uniqueVoters=int(mean.quantize(Decimal(1), rounding=ROUND_HALF_UP)),
        ))

    return result
