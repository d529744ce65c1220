from abc import ABC, abstractmethod
from typing import Dict, Iterable, List

from govmetrics.core.entities.delegate import DelegateMetadata, DelegateRosterEntry
from govmetrics.core.entities.event import DelegationRecord, StakeRecord
from govmetrics.core.entities.poll import PollRosterEntry


class IGovernanceSource(ABC):
    """
    Upstream fetch collaborator. Every method either returns the complete
    record set or raises UpstreamFetchError.
    """

    @abstractmethod
    async def get_delegates(self) -> List[DelegateRosterEntry]:
        pass

    @abstractmethod
    async def get_delegations(self, vote_delegate: str) -> List[DelegationRecord]:
        """
        Delegation records for one delegate contract, in upstream order.
        """
        pass

    @abstractmethod
    async def get_delegates_metadata(self) -> List[DelegateMetadata]:
        pass

    @abstractmethod
    async def get_stake_records(self) -> List[StakeRecord]:
        pass

    @abstractmethod
    async def get_block_timestamps(self, block_numbers: Iterable[int]) -> Dict[int, int]:
        """
        Returns block number -> unix timestamp (seconds). Blocks the source
        does not know are simply absent from the mapping.
        """
        pass

    @abstractmethod
    async def get_polls(self) -> List[PollRosterEntry]:
        pass

    @abstractmethod
    async def get_unique_voters(self, poll_id: int) -> int:
        pass
