from datetime import datetime
from decimal import Decimal
from typing import List

from pydantic import BaseModel


class BalanceEntry(BaseModel):
    """
    An account's staked balance and its delegated-out balance,
    accumulated independently.
    """
    address: str
    amount: Decimal = Decimal(0)
    delegated: Decimal = Decimal(0)


class Snapshot(BaseModel):
    """
    Every known account balance right after one event.
    """
    time: datetime
    balances: List[BalanceEntry]


class SeriesPoint(BaseModel):
    time: datetime
    amount: Decimal


class DelegateBalanceEntry(BaseModel):
    address: str
    name: str = ""
    amount: Decimal = Decimal(0)


class DelegateBalanceSnapshot(BaseModel):
    time: datetime
    balances: List[DelegateBalanceEntry]
