"""
Flow-graph builder: delegator -> delegate sankey data.

Delegators at or above the policy threshold keep their own node; all
smaller delegators are merged into a single "others" node whose
per-delegate amounts are the sums across them.
"""
from decimal import Decimal
from typing import Collection, Dict, Iterable, List, Optional, Set

from govmetrics.core.entities.delegate import DelegateMetadata, DelegateRecord, DelegateStatus
from govmetrics.core.entities.event import Event
from govmetrics.core.entities.flow import (
    DelegateAmount,
    DelegatorBreakdown,
    FlowGraph,
    FlowLink,
    FlowNode,
)
from govmetrics.core.policy import OTHERS_NODE, AggregationPolicy


def excluded_delegates(
    delegates: Iterable[DelegateRecord],
    metadata: Iterable[DelegateMetadata] = ()
) -> Set[str]:
    """
    Shadow and expired delegates are left out of the flow graph.

    Any metadata entry flagging an address excludes it, even when a later
    entry for the same address overwrote the merged record.
    """
    flagged = list(delegates) + list(metadata)
    return {
        d.voteDelegateAddress
        for d in flagged
        if d.status in (DelegateStatus.SHADOW, DelegateStatus.EXPIRED) or d.expired
    }


def aggregate_delegators(
    events: Iterable[Event],
    excluded: Collection[str] = ()
) -> List[DelegatorBreakdown]:
    # delegator -> delegate -> amount, both in first-seen order
    totals: Dict[str, Dict[str, Decimal]] = {}

    for event in events:
        if event.delegate is None or event.delegate in excluded:
            continue
        per_delegate = totals.setdefault(event.sender, {})
        per_delegate[event.delegate] = per_delegate.get(event.delegate, Decimal(0)) + event.amount

    return [
        DelegatorBreakdown(
            delegator=delegator,
            totalDelegated=sum(per_delegate.values(), Decimal(0)),
            delegations=[DelegateAmount(delegate=d, amount=a) for d, a in per_delegate.items()],
        )
        for delegator, per_delegate in totals.items()
    ]


def _merge_small(breakdowns: Iterable[DelegatorBreakdown]) -> DelegatorBreakdown:
    total = Decimal(0)
    per_delegate: Dict[str, Decimal] = {}

    for breakdown in breakdowns:
        total += breakdown.totalDelegated
        for d in breakdown.delegations:
            per_delegate[d.delegate] = per_delegate.get(d.delegate, Decimal(0)) + d.amount

    return DelegatorBreakdown(
        delegator=OTHERS_NODE,
        totalDelegated=total,
        delegations=[DelegateAmount(delegate=d, amount=a) for d, a in per_delegate.items()],
    )


def build_flow_graph(
    breakdowns: Iterable[DelegatorBreakdown],
    policy: Optional[AggregationPolicy] = None
) -> FlowGraph:
    policy = policy or AggregationPolicy()

    active = sorted(
        (
            b.model_copy(update={"delegations": [d for d in b.delegations if d.amount > 0]})
            for b in breakdowns
            if b.totalDelegated > 0
        ),
        key=lambda b: b.totalDelegated,
        reverse=True,
    )

    large = [b for b in active if b.totalDelegated >= policy.large_delegator_threshold]
    small = [b for b in active if b.totalDelegated < policy.large_delegator_threshold]

    sources = list(large)
    others = _merge_small(small)
    if others.delegations:
        sources.append(others)

    # dict keys double as an ordered set
    node_ids: Dict[str, None] = {}
    for source in sources:
        node_ids[source.delegator] = None
    for source in sources:
        for d in source.delegations:
            node_ids.setdefault(d.delegate, None)

    links: List[FlowLink] = []
    for source in sources:
        links.extend(sorted(
            (FlowLink(source=source.delegator, target=d.delegate, value=d.amount) for d in source.delegations),
            key=lambda link: link.value,
            reverse=True,
        ))

    return FlowGraph(nodes=[FlowNode(id=node_id) for node_id in node_ids], links=links)
