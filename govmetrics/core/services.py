import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from govmetrics.core.entities.balance import DelegateBalanceSnapshot, SeriesPoint, Snapshot
from govmetrics.core.entities.delegate import (
    DelegateMetadata,
    DelegateRecord,
    DelegateRosterEntry,
    GroupedBalances,
)
from govmetrics.core.entities.event import DelegationRecord, Event, StakeRecord
from govmetrics.core.entities.flow import FlowGraph
from govmetrics.core.entities.poll import PollVoterCount, PollVotersData
from govmetrics.core.errors import UnknownDelegateReference
from govmetrics.core.interfaces.datasource import IGovernanceSource
from govmetrics.core.policy import AggregationPolicy
from govmetrics.core.use_cases.balance_classifier import classify_balances
from govmetrics.core.use_cases.balance_reducer import BalanceReducer
from govmetrics.core.use_cases.chronological_merger import merge_chronological
from govmetrics.core.use_cases.daily_collapse import collapse_daily
from govmetrics.core.use_cases.delegate_aggregator import (
    apply_metadata,
    count_delegators,
    rank_delegates,
    summarize_delegate,
)
from govmetrics.core.use_cases.event_normalizer import normalize_delegations, normalize_stake_records
from govmetrics.core.use_cases.flow_graph_builder import (
    aggregate_delegators,
    build_flow_graph,
    excluded_delegates,
)
from govmetrics.core.use_cases.poll_voters import average_voters_by_month

logger = logging.getLogger(__name__)

# --- Raw Inputs (ingestion phase output) ---

class DelegationData(BaseModel):
    delegates: List[DelegateRosterEntry] = []
    # voteDelegate -> its records, in roster order
    delegations: Dict[str, List[DelegationRecord]] = {}
    metadata: List[DelegateMetadata] = []


class StakeData(BaseModel):
    records: List[StakeRecord] = []
    blockTimes: Dict[int, int] = {}


class RawGovernanceData(BaseModel):
    delegation: DelegationData
    stake: StakeData
    polls: List[PollVoterCount] = []

# --- Output Models ---

class GovernanceDataResponse(BaseModel):
    topDelegates: List[DelegateRecord]
    mkrDelegatedData: List[SeriesPoint]
    totalDelegatorCount: int
    allDelegations: List[Event]
    sankeyData: FlowGraph


class StakedMkrResponse(BaseModel):
    mkrStakedData: List[SeriesPoint]
    stakeEvents: List[Event]
    missingBlocks: List[int] = []


class DashboardResponse(BaseModel):
    governance: GovernanceDataResponse
    staked: StakedMkrResponse
    userBalances: List[Snapshot]
    groupedBalances: GroupedBalances
    # None when the per-delegate view could not be computed
    delegateBalances: Optional[List[DelegateBalanceSnapshot]] = None
    pollVoters: List[PollVotersData]

# --- Business Logic Services ---

class GovernanceService:
    """
    Two phases: collect_* gathers raw records from the data source
    (concurrently where independent), reduce_* turns those records into
    query results without touching the network.
    """

    def __init__(self, datasource: IGovernanceSource, policy: Optional[AggregationPolicy] = None):
        self.db = datasource
        self.policy = policy or AggregationPolicy.from_env()

    # --- Ingestion ---

    async def collect_delegations(self) -> DelegationData:
        roster = await self.db.get_delegates()

        # a delegate listed twice must not have its stream fetched twice
        seen = set()
        delegates = []
        for entry in roster:
            if entry.voteDelegate not in seen:
                seen.add(entry.voteDelegate)
                delegates.append(entry)

        # Fan out per delegate; any failure aborts the whole collection
        per_delegate, metadata = await asyncio.gather(
            asyncio.gather(*[self.db.get_delegations(d.voteDelegate) for d in delegates]),
            self.db.get_delegates_metadata(),
        )

        delegations: Dict[str, List[DelegationRecord]] = {}
        for delegate, records in zip(delegates, per_delegate):
            delegations[delegate.voteDelegate] = list(records)

        logger.info(f"Collected {sum(len(r) for r in per_delegate)} delegation records "
                    f"for {len(delegates)} delegates")
        return DelegationData(delegates=delegates, delegations=delegations, metadata=metadata)

    async def collect_stake(self) -> StakeData:
        records = await self.db.get_stake_records()
        block_numbers = sorted({r.blockNumber for r in records})
        block_times = await self.db.get_block_timestamps(block_numbers) if block_numbers else {}

        logger.info(f"Collected {len(records)} stake records over {len(block_numbers)} blocks")
        return StakeData(records=records, blockTimes=block_times)

    async def collect_polls(self) -> List[PollVoterCount]:
        polls = await self.db.get_polls()
        counts = await asyncio.gather(*[self.db.get_unique_voters(p.pollId) for p in polls])
        return [
            PollVoterCount(pollId=p.pollId, startDate=p.startDate, uniqueVoters=count)
            for p, count in zip(polls, counts)
        ]

    async def collect(self) -> RawGovernanceData:
        delegation, stake, polls = await asyncio.gather(
            self.collect_delegations(),
            self.collect_stake(),
            self.collect_polls(),
        )
        return RawGovernanceData(delegation=delegation, stake=stake, polls=polls)

    # --- Reduction ---

    def rank(self, data: DelegationData) -> List[DelegateRecord]:
        summaries = [summarize_delegate(address, records) for address, records in data.delegations.items()]
        return rank_delegates(apply_metadata(summaries, data.metadata))

    def delegation_events(self, data: DelegationData) -> List[Event]:
        return merge_chronological(*[normalize_delegations(r) for r in data.delegations.values()])

    def reduce_governance(self, data: DelegationData) -> GovernanceDataResponse:
        top_delegates = self.rank(data)
        events = self.delegation_events(data)
        all_records = [r for records in data.delegations.values() for r in records]

        breakdowns = aggregate_delegators(events, excluded_delegates(top_delegates, data.metadata))

        return GovernanceDataResponse(
            topDelegates=top_delegates,
            mkrDelegatedData=collapse_daily(BalanceReducer.running_total(events)),
            totalDelegatorCount=count_delegators(all_records),
            allDelegations=events,
            sankeyData=build_flow_graph(breakdowns, self.policy),
        )

    def stake_events(self, data: StakeData) -> Tuple[List[Event], List[int]]:
        # upstream records are grouped by lock/free; block order restores causality
        records = sorted(data.records, key=lambda r: r.blockNumber)
        events, missing = normalize_stake_records(records, data.blockTimes)
        if missing:
            logger.warning(f"Stake history skipped events in {len(missing)} unresolved blocks")
        return merge_chronological(events), missing

    def reduce_staked(self, data: StakeData) -> StakedMkrResponse:
        events, missing = self.stake_events(data)

        return StakedMkrResponse(
            mkrStakedData=collapse_daily(BalanceReducer.running_total(events)),
            stakeEvents=events,
            missingBlocks=missing,
        )

    def reduce_user_balances(self, delegation_events: List[Event], stake_events: List[Event]) -> List[Snapshot]:
        combined = merge_chronological(delegation_events, stake_events)
        return collapse_daily(BalanceReducer.reduce(combined))

    def reduce_grouped_balances(
        self,
        delegates: List[DelegateRecord],
        user_balances: List[Snapshot]
    ) -> GroupedBalances:
        latest = user_balances[-1] if user_balances else None
        return classify_balances(latest, delegates, self.policy)

    def reduce_delegate_balances(
        self,
        delegation_events: List[Event],
        delegates: List[DelegateRecord]
    ) -> Optional[List[DelegateBalanceSnapshot]]:
        try:
            return BalanceReducer.delegate_history(delegation_events, delegates)
        except UnknownDelegateReference as e:
            logger.warning(f"Delegate balance history unavailable: {e}")
            return None

    def reduce(self, raw: RawGovernanceData) -> DashboardResponse:
        governance = self.reduce_governance(raw.delegation)
        staked = self.reduce_staked(raw.stake)
        user_balances = self.reduce_user_balances(governance.allDelegations, staked.stakeEvents)

        return DashboardResponse(
            governance=governance,
            staked=staked,
            userBalances=user_balances,
            groupedBalances=self.reduce_grouped_balances(governance.topDelegates, user_balances),
            delegateBalances=self.reduce_delegate_balances(governance.allDelegations, governance.topDelegates),
            pollVoters=average_voters_by_month(raw.polls),
        )

    # --- Queries ---

    async def get_governance_data(self) -> GovernanceDataResponse:
        return self.reduce_governance(await self.collect_delegations())

    async def get_staked_mkr(self) -> StakedMkrResponse:
        return self.reduce_staked(await self.collect_stake())

    async def get_user_balances(self) -> List[Snapshot]:
        delegation, stake = await asyncio.gather(self.collect_delegations(), self.collect_stake())
        return self.reduce_user_balances(self.delegation_events(delegation), self.stake_events(stake)[0])

    async def get_grouped_balances(self) -> GroupedBalances:
        delegation, stake = await asyncio.gather(self.collect_delegations(), self.collect_stake())
        user_balances = self.reduce_user_balances(self.delegation_events(delegation), self.stake_events(stake)[0])
        return self.reduce_grouped_balances(self.rank(delegation), user_balances)

    async def get_delegate_balances(self) -> Optional[List[DelegateBalanceSnapshot]]:
        delegation = await self.collect_delegations()
        return self.reduce_delegate_balances(self.delegation_events(delegation), self.rank(delegation))

    async def get_poll_voters(self) -> List[PollVotersData]:
        return average_voters_by_month(await self.collect_polls())

    async def get_dashboard(self) -> DashboardResponse:
        return self.reduce(await self.collect())
