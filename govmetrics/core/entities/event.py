"""
Event Entities for GovMetrics

Raw upstream records and the canonical balance-affecting Event they
normalize into.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Event(BaseModel):
    """
    One atomic balance-affecting action.
    amount is signed: positive = lock/delegate, negative = free/undelegate.
    delegate is set only for delegation events.
    """
    model_config = ConfigDict(frozen=True)

    time: datetime
    sender: str
    amount: Decimal
    delegate: Optional[str] = None


class DelegationRecord(BaseModel):
    """
    A delegation lock record as served by the polling database,
    already remapped so fromAddress is the delegator and
    immediateCaller is the delegate contract.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "fromAddress": "0x4f2e0b8a1c4f2e0b8a1c4f2e0b8a1c4f2e0b8a1c",
                "immediateCaller": "0x845b36e6d9ce0e2c5b3d6f2e8a9c1e0d9f2c3b4a",
                "lockAmount": "1500.5",
                "lockTotal": "42000.25",
                "blockTimestamp": "2022-03-01T12:00:00Z"
            }
        },
    )

    fromAddress: str
    immediateCaller: str
    lockAmount: Decimal
    lockTotal: Decimal = Decimal(0)
    blockTimestamp: datetime


class StakeRecord(BaseModel):
    """
    A DSChief lock (positive) or free (negative) event, timestamped
    only by its block number.
    """
    model_config = ConfigDict(frozen=True)

    blockNumber: int
    sender: str
    amount: Decimal
