import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Tuple

from govmetrics.core.entities.event import DelegationRecord, Event, StakeRecord
from govmetrics.core.errors import MissingBlockTimestamp

logger = logging.getLogger(__name__)


def as_utc(moment: datetime) -> datetime:
    # Upstream timestamps without an offset are UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def normalize_delegation(record: DelegationRecord) -> Event:
    # lockAmount is summed as given; a negative amount stays negative
    return Event(
        time=as_utc(record.blockTimestamp),
        sender=record.fromAddress,
        amount=record.lockAmount,
        delegate=record.immediateCaller,
    )


def normalize_delegations(records: Iterable[DelegationRecord]) -> List[Event]:
    return [normalize_delegation(r) for r in records]


def normalize_stake(record: StakeRecord, block_times: Dict[int, int]) -> Event:
    """
    Resolve a stake record's block number to a timestamp (unix seconds).
    Raises MissingBlockTimestamp when the lookup has no entry for the block.
    """
    timestamp = block_times.get(record.blockNumber)
    if timestamp is None:
        raise MissingBlockTimestamp(record.blockNumber)

    return Event(
        time=datetime.fromtimestamp(int(timestamp), tz=timezone.utc),
        sender=record.sender,
        amount=record.amount,
    )


def normalize_stake_records(
    records: Iterable[StakeRecord],
    block_times: Dict[int, int]
) -> Tuple[List[Event], List[int]]:
    """
    Normalize stake records in order, skipping those whose block could not
    be resolved. Returns the events and the distinct missing block numbers.
    """
    events: List[Event] = []
    missing: List[int] = []

    for record in records:
        try:
            events.append(normalize_stake(record, block_times))
        except MissingBlockTimestamp as e:
            logger.warning(f"Skipping stake event from {record.sender}: {e}")
            if e.block_number not in missing:
                missing.append(e.block_number)

    return events, missing
