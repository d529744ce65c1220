from typing import Dict, Iterable, List, Optional

from govmetrics.core.entities.delegate import DelegateMetadata, DelegateRosterEntry
from govmetrics.core.entities.event import DelegationRecord, StakeRecord
from govmetrics.core.entities.poll import PollRosterEntry
from govmetrics.core.interfaces.datasource import IGovernanceSource


class InMemoryGovernanceSource(IGovernanceSource):
    """
    Serves fixed record sets. Used by tests and for running the API
    without network access.
    """

    def __init__(
        self,
        delegates: Optional[List[DelegateRosterEntry]] = None,
        delegations: Optional[List[DelegationRecord]] = None,
        metadata: Optional[List[DelegateMetadata]] = None,
        stake_records: Optional[List[StakeRecord]] = None,
        block_times: Optional[Dict[int, int]] = None,
        polls: Optional[List[PollRosterEntry]] = None,
        unique_voters: Optional[Dict[int, int]] = None,
    ):
        self.delegates = delegates or []
        self.delegations = delegations or []
        self.metadata = metadata or []
        self.stake_records = stake_records or []
        self.block_times = block_times or {}
        self.polls = polls or []
        self.unique_voters = unique_voters or {}

    async def get_delegates(self) -> List[DelegateRosterEntry]:
        return list(self.delegates)

    async def get_delegations(self, vote_delegate: str) -> List[DelegationRecord]:
        return [d for d in self.delegations if d.immediateCaller == vote_delegate]

    async def get_delegates_metadata(self) -> List[DelegateMetadata]:
        return list(self.metadata)

    async def get_stake_records(self) -> List[StakeRecord]:
        return list(self.stake_records)

    async def get_block_timestamps(self, block_numbers: Iterable[int]) -> Dict[int, int]:
        return {n: self.block_times[n] for n in block_numbers if n in self.block_times}

    async def get_polls(self) -> List[PollRosterEntry]:
        return list(self.polls)

    async def get_unique_voters(self, poll_id: int) -> int:
        return self.unique_voters.get(poll_id, 0)
