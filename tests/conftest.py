"""
Pytest configuration and shared fixtures.

The governance fixture models three delegates (recognized, shadow, expired),
three delegators and a handful of DSChief lock/free events spread over
three days in January 2022, one of them in a block with no known timestamp.
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from govmetrics.api.main import app, get_datasource
from govmetrics.core.entities.delegate import DelegateMetadata, DelegateRosterEntry
from govmetrics.core.entities.event import DelegationRecord, StakeRecord
from govmetrics.core.entities.poll import PollRosterEntry
from govmetrics.infrastructure.gateways.local_mock import InMemoryGovernanceSource

RECOGNIZED = "0xd1"
SHADOW = "0xd2"
EXPIRED = "0xd3"
WHALE = "0xaa"
MINNOW = "0xbb"
DUST = "0xcc"


def at(day: int, hour: int = 0) -> datetime:
    return datetime(2022, 1, day, hour, tzinfo=timezone.utc)


def unix(day: int, hour: int = 0) -> int:
    return int(at(day, hour).timestamp())


def delegation(delegator: str, delegate: str, amount: str, total: str, moment: datetime) -> DelegationRecord:
    return DelegationRecord(
        fromAddress=delegator,
        immediateCaller=delegate,
        lockAmount=Decimal(amount),
        lockTotal=Decimal(total),
        blockTimestamp=moment,
    )


@pytest.fixture
def governance_source() -> InMemoryGovernanceSource:
    return InMemoryGovernanceSource(
        delegates=[
            DelegateRosterEntry(voteDelegate=RECOGNIZED, blockTimestamp=at(1)),
            DelegateRosterEntry(voteDelegate=SHADOW, blockTimestamp=at(1)),
            DelegateRosterEntry(voteDelegate=EXPIRED, blockTimestamp=at(1)),
        ],
        delegations=[
            delegation(WHALE, RECOGNIZED, "600", "600", at(1, 10)),
            delegation(MINNOW, RECOGNIZED, "100", "700", at(1, 12)),
            delegation(DUST, SHADOW, "50", "50", at(2, 9)),
            delegation(WHALE, EXPIRED, "10", "10", at(3, 12)),
        ],
        metadata=[
            DelegateMetadata(voteDelegateAddress=RECOGNIZED, name="Alice Delegate", status="recognized"),
            DelegateMetadata(voteDelegateAddress=SHADOW, name="Shadow Delegate", status="shadow"),
            DelegateMetadata(voteDelegateAddress=EXPIRED, name="Old Delegate", status="recognized", expired=True),
        ],
        stake_records=[
            StakeRecord(blockNumber=100, sender=WHALE, amount=Decimal("1000")),
            StakeRecord(blockNumber=101, sender=SHADOW, amount=Decimal("200")),
            StakeRecord(blockNumber=102, sender=WHALE, amount=Decimal("-300")),
            StakeRecord(blockNumber=103, sender=DUST, amount=Decimal("5")),
            StakeRecord(blockNumber=104, sender=RECOGNIZED, amount=Decimal("40")),
            StakeRecord(blockNumber=105, sender=EXPIRED, amount=Decimal("80")),
        ],
        block_times={
            100: unix(1, 8),
            101: unix(2, 8),
            102: unix(3, 8),
            104: unix(3, 9),
            105: unix(3, 10),
        },
        polls=[
            PollRosterEntry(pollId=1, startDate=datetime(2022, 1, 5, tzinfo=timezone.utc)),
            PollRosterEntry(pollId=2, startDate=datetime(2022, 1, 20, tzinfo=timezone.utc)),
            PollRosterEntry(pollId=3, startDate=datetime(2022, 2, 1, tzinfo=timezone.utc)),
        ],
        unique_voters={1: 100, 2: 51, 3: 10},
    )


@pytest.fixture
async def client(governance_source):
    """Async HTTP client for testing FastAPI endpoints against in-memory data."""
    async def override():
        yield governance_source

    app.dependency_overrides[get_datasource] = override
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
