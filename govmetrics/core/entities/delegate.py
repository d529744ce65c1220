"""
Delegate Entities for GovMetrics

Roster, metadata and ranking records for vote delegates, plus the
grouped balance classification built from them.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class DelegateStatus(str, Enum):
    RECOGNIZED = "recognized"
    SHADOW = "shadow"
    EXPIRED = "expired"
    NONE = ""


class DelegateRosterEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    voteDelegate: str
    blockTimestamp: Optional[datetime] = None


class DelegateMetadata(BaseModel):
    """
    Name/status overlay published by the voting portal.
    """
    model_config = ConfigDict(frozen=True)

    voteDelegateAddress: str
    name: str = ""
    status: DelegateStatus = DelegateStatus.NONE
    expired: bool = False
    isAboutToExpire: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def _unknown_status_is_none(cls, value):
        # The portal occasionally ships statuses we do not classify on
        if value in {s.value for s in DelegateStatus}:
            return value
        return DelegateStatus.NONE

    @field_validator("name", mode="before")
    @classmethod
    def _null_name(cls, value):
        return value or ""

    @field_validator("expired", "isAboutToExpire", mode="before")
    @classmethod
    def _null_flag(cls, value):
        return False if value is None else value


class DelegateRecord(BaseModel):
    """
    Per-delegate totals. lockTotal and delegatorCount are derived from
    the delegate's event stream; the rest comes from metadata.
    """
    voteDelegateAddress: str
    lockTotal: Decimal = Decimal(0)
    delegatorCount: int = 0
    name: str = ""
    status: DelegateStatus = DelegateStatus.NONE
    expired: bool = False
    isAboutToExpire: bool = False


class RecognizedDelegateBalance(BaseModel):
    address: str
    name: str = ""
    amount: Decimal


class AddressBalance(BaseModel):
    address: str
    amount: Decimal


class GroupedBalances(BaseModel):
    recognizedDelegates: List[RecognizedDelegateBalance] = []
    shadowDelegates: List[AddressBalance] = []
    users: List[AddressBalance] = []
