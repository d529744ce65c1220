from typing import Iterable, Optional

from govmetrics.core.entities.balance import Snapshot
from govmetrics.core.entities.delegate import (
    AddressBalance,
    DelegateRecord,
    DelegateStatus,
    GroupedBalances,
    RecognizedDelegateBalance,
)
from govmetrics.core.policy import AggregationPolicy


def classify_balances(
    snapshot: Optional[Snapshot],
    delegates: Iterable[DelegateRecord],
    policy: Optional[AggregationPolicy] = None
) -> GroupedBalances:
    """
    Partition one snapshot's staked balances into recognized delegates,
    shadow delegates and plain users.

    Balances under the materiality floor and balances of expired delegates
    are dropped, not re-bucketed. Each bucket is sorted by amount, largest
    first.
    """
    policy = policy or AggregationPolicy()
    grouped = GroupedBalances()
    if snapshot is None:
        return grouped

    recognized = {}
    shadow = set()
    expired = set()
    for d in delegates:
        if d.status == DelegateStatus.RECOGNIZED:
            recognized[d.voteDelegateAddress] = d.name
        elif d.status == DelegateStatus.SHADOW:
            shadow.add(d.voteDelegateAddress)
        if d.expired:
            expired.add(d.voteDelegateAddress)

    material = sorted(
        (b for b in snapshot.balances
         if b.amount >= policy.materiality_floor and b.address not in expired),
        key=lambda b: b.amount,
        reverse=True,
    )

    for balance in material:
        if balance.address in recognized:
            grouped.recognizedDelegates.append(RecognizedDelegateBalance(
                address=balance.address,
                name=recognized[balance.address],
                amount=balance.amount,
            ))
        elif balance.address in shadow:
            grouped.shadowDelegates.append(AddressBalance(address=balance.address, amount=balance.amount))
        else:
            grouped.users.append(AddressBalance(address=balance.address, amount=balance.amount))

    return grouped
