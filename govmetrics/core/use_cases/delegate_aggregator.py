from decimal import Decimal
from typing import Dict, Iterable, List, Sequence

from govmetrics.core.entities.delegate import DelegateMetadata, DelegateRecord
from govmetrics.core.entities.event import DelegationRecord

SHADOW_NAME_PLACEHOLDER = "Shadow Delegate"


def _net_by_delegator(records: Iterable[DelegationRecord]) -> Dict[str, Decimal]:
    balances: Dict[str, Decimal] = {}
    for record in records:
        balances[record.fromAddress] = balances.get(record.fromAddress, Decimal(0)) + record.lockAmount
    return balances


def count_delegators(records: Iterable[DelegationRecord]) -> int:
    """Distinct delegators whose net delegation is strictly positive."""
    return sum(1 for net in _net_by_delegator(records).values() if net > 0)


def summarize_delegate(vote_delegate: str, records: Sequence[DelegationRecord]) -> DelegateRecord:
    """
    Totals for one delegate from its own record stream. lockTotal is the
    cumulative figure carried by the stream's last record.
    """
    return DelegateRecord(
        voteDelegateAddress=vote_delegate,
        lockTotal=records[-1].lockTotal if records else Decimal(0),
        delegatorCount=count_delegators(records),
    )


def apply_metadata(
    records: Iterable[DelegateRecord],
    metadata: Iterable[DelegateMetadata]
) -> List[DelegateRecord]:
    # later entries for the same address overwrite earlier ones
    by_address: Dict[str, DelegateMetadata] = {meta.voteDelegateAddress: meta for meta in metadata}

    enriched = []
    for record in records:
        meta = by_address.get(record.voteDelegateAddress)
        if meta is None:
            enriched.append(record.model_copy())
            continue

        enriched.append(record.model_copy(update={
            "name": meta.name if meta.name != SHADOW_NAME_PLACEHOLDER else "",
            "status": meta.status,
            "expired": meta.expired,
            "isAboutToExpire": meta.isAboutToExpire,
        }))

    return enriched


def rank_delegates(records: Iterable[DelegateRecord]) -> List[DelegateRecord]:
    return sorted(records, key=lambda d: d.lockTotal, reverse=True)
