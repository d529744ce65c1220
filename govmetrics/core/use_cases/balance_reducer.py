from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional

from govmetrics.core.entities.balance import (
    BalanceEntry,
    DelegateBalanceEntry,
    DelegateBalanceSnapshot,
    SeriesPoint,
    Snapshot,
)
from govmetrics.core.entities.delegate import DelegateRecord
from govmetrics.core.entities.event import Event
from govmetrics.core.errors import UnknownDelegateReference

CENT = Decimal("0.01")


def round_amount(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class _Account:
    __slots__ = ("amount", "delegated")

    def __init__(self, amount: Decimal = Decimal(0), delegated: Decimal = Decimal(0)):
        self.amount = amount
        self.delegated = delegated


class BalanceReducer:
    """
    Replays chronological events into running balances.

    Accumulators keep full precision; values are rounded to cents only
    when a snapshot is emitted, so truncating the output never changes
    later sums.
    """

    @staticmethod
    def reduce(
        events: Iterable[Event],
        seed: Optional[Dict[str, BalanceEntry]] = None
    ) -> List[Snapshot]:
        # address -> account, insertion order = first sighting
        accounts: Dict[str, _Account] = {}
        if seed:
            for address, entry in seed.items():
                accounts[address] = _Account(entry.amount, entry.delegated)

        history: List[Snapshot] = []

        for event in events:
            account = accounts.get(event.sender)
            if account is None:
                account = accounts[event.sender] = _Account()

            if event.delegate:
                account.delegated += event.amount
            else:
                account.amount += event.amount

            history.append(Snapshot(
                time=event.time,
                balances=[
                    BalanceEntry(
                        address=address,
                        amount=round_amount(acc.amount),
                        delegated=round_amount(acc.delegated),
                    )
                    for address, acc in accounts.items()
                ],
            ))

        return history

    @staticmethod
    def running_total(events: Iterable[Event]) -> List[SeriesPoint]:
        total = Decimal(0)
        series: List[SeriesPoint] = []

        for event in events:
            total += event.amount
            series.append(SeriesPoint(time=event.time, amount=round_amount(total)))

        return series

    @staticmethod
    def delegate_history(
        events: Iterable[Event],
        delegates: List[DelegateRecord]
    ) -> List[DelegateBalanceSnapshot]:
        """
        Running balance of every delegate in the roster after each delegation.
        Raises UnknownDelegateReference if an event targets a delegate that
        is not in the roster.
        """
        names: Dict[str, str] = {}
        totals: Dict[str, Decimal] = {}
        for delegate in delegates:
            names[delegate.voteDelegateAddress] = delegate.name
            totals[delegate.voteDelegateAddress] = Decimal(0)

        history: List[DelegateBalanceSnapshot] = []

        for event in events:
            if event.delegate not in totals:
                raise UnknownDelegateReference(event.delegate)

            totals[event.delegate] += event.amount

            history.append(DelegateBalanceSnapshot(
                time=event.time,
                balances=[
                    DelegateBalanceEntry(
                        address=address,
                        name=names[address],
                        amount=round_amount(amount),
                    )
                    for address, amount in totals.items()
                ],
            ))

        return history
