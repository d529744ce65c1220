"""
Tests for MakerGovernanceGateway against canned upstream responses
served through httpx.MockTransport.
"""
import json
from decimal import Decimal

import httpx
import pytest

from govmetrics.core.errors import UpstreamFetchError
from govmetrics.infrastructure.gateways.maker_governance_api import (
    FREE_TOPIC,
    LOCK_TOPIC,
    MakerGovernanceGateway,
)

SENDER = "0x" + "ab" * 20
DELEGATE = "0x845b36e6d9ce0e2c5b3d6f2e8a9c1e0d9f2c3b4a"


def wad_topic(mkr: str) -> str:
    return f"0x{int(Decimal(mkr) * 10 ** 18):064x}"


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:]


def make_gateway(handler) -> MakerGovernanceGateway:
    return MakerGovernanceGateway(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_delegations_are_remapped_to_delegator_and_delegate():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.update(body)
        return httpx.Response(200, json={"data": {"mkrLockedDelegateArrayTotalsV2": {"nodes": [
            {
                "fromAddress": "0xproxy",
                "immediateCaller": SENDER,
                "lockAmount": "12.345678901234567891",
                "lockTotal": "100.5",
                "blockTimestamp": "2022-01-01T10:00:00+00:00",
            },
        ]}}})

    gateway = make_gateway(handler)
    records = await gateway.get_delegations(DELEGATE)
    await gateway.aclose()

    assert seen["operationName"] == "mkrLockedDelegateArrayTotalsV2"
    assert seen["variables"]["argAddress"] == [DELEGATE]
    assert len(records) == 1
    assert records[0].fromAddress == SENDER
    assert records[0].immediateCaller == DELEGATE
    assert records[0].lockAmount == Decimal("12.345678901234567891")
    assert records[0].lockTotal == Decimal("100.5")


@pytest.mark.asyncio
async def test_graphql_errors_raise_upstream_fetch_error():
    def handler(request):
        return httpx.Response(200, json={"errors": [{"message": "boom"}], "data": None})

    gateway = make_gateway(handler)
    with pytest.raises(UpstreamFetchError) as exc:
        await gateway.get_delegates()
    assert exc.value.source == "polling-db"


@pytest.mark.asyncio
async def test_http_error_status_is_reported():
    gateway = make_gateway(lambda request: httpx.Response(503, text="unavailable"))

    with pytest.raises(UpstreamFetchError) as exc:
        await gateway.get_delegates_metadata()
    assert exc.value.status_code == 503


@pytest.mark.asyncio
async def test_invalid_json_raises():
    gateway = make_gateway(lambda request: httpx.Response(200, text="<html>not json</html>"))

    with pytest.raises(UpstreamFetchError):
        await gateway.get_polls()


@pytest.mark.asyncio
async def test_malformed_delegation_record_is_fatal():
    def handler(request):
        return httpx.Response(200, json={"data": {"mkrLockedDelegateArrayTotalsV2": {"nodes": [
            {"immediateCaller": SENDER, "blockTimestamp": "2022-01-01T10:00:00Z"},
        ]}}})

    gateway = make_gateway(handler)
    with pytest.raises(UpstreamFetchError):
        await gateway.get_delegations(DELEGATE)


@pytest.mark.asyncio
async def test_metadata_skips_malformed_entries():
    def handler(request):
        return httpx.Response(200, json=[
            {"voteDelegateAddress": DELEGATE, "name": "Alice", "status": "recognized",
             "expired": False, "isAboutToExpire": True},
            {"name": "missing address"},
        ])

    gateway = make_gateway(handler)
    metadata = await gateway.get_delegates_metadata()

    assert [m.voteDelegateAddress for m in metadata] == [DELEGATE]
    assert metadata[0].isAboutToExpire is True


@pytest.mark.asyncio
async def test_stake_records_decode_lock_and_free_logs():
    def handler(request):
        body = json.loads(request.content)
        if body["method"] == "eth_blockNumber":
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": "0x500000"})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": [
            {"blockNumber": hex(4_800_001), "topics": [FREE_TOPIC, address_topic(SENDER), wad_topic("0.5")]},
            {"blockNumber": hex(4_800_000), "topics": [LOCK_TOPIC, address_topic(SENDER), wad_topic("1.5")]},
        ]})

    gateway = make_gateway(handler)
    records = await gateway.get_stake_records()

    assert [(r.blockNumber, r.sender, r.amount) for r in records] == [
        (4_800_000, SENDER, Decimal("1.5")),
        (4_800_001, SENDER, Decimal("-0.5")),
    ]


@pytest.mark.asyncio
async def test_log_range_is_split_when_too_wide():
    ranges = []

    def handler(request):
        body = json.loads(request.content)
        if body["method"] == "eth_blockNumber":
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": hex(0x487813 + 9)})

        params = body["params"][0]
        start, end = int(params["fromBlock"], 16), int(params["toBlock"], 16)
        ranges.append((start, end))
        if end - start > 5:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"],
                                             "error": {"code": -32005, "message": "query returned more than 10000 results"}})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": [
            {"blockNumber": hex(start), "topics": [LOCK_TOPIC, address_topic(SENDER), wad_topic("1")]},
        ]})

    gateway = make_gateway(handler)
    records = await gateway.get_stake_records()

    assert len(ranges) == 3
    assert [r.blockNumber for r in records] == [0x487813, 0x487813 + 5]


@pytest.mark.asyncio
async def test_rpc_error_without_split_hint_propagates():
    def handler(request):
        body = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"message": "internal error"}})

    gateway = make_gateway(handler)
    with pytest.raises(UpstreamFetchError):
        await gateway.get_stake_records()


@pytest.mark.asyncio
async def test_block_timestamps_are_requested_in_batches():
    batches = []

    def handler(request):
        query = json.loads(request.content)["query"]
        numbers = json.loads(query[query.index("["):query.index("]") + 1])
        batches.append(len(numbers))
        # the subgraph does not know block 7
        return httpx.Response(200, json={"data": {"blocks": [
            {"number": str(n), "timestamp": str(1_600_000_000 + n)} for n in numbers if n != 7
        ]}})

    gateway = make_gateway(handler)
    block_times = await gateway.get_block_timestamps(range(1500))

    assert batches == [1000, 500]
    assert len(block_times) == 1499
    assert 7 not in block_times
    assert block_times[1499] == 1_600_001_499


@pytest.mark.asyncio
async def test_polls_and_unique_voters():
    def handler(request):
        body = json.loads(request.content)
        if body["operationName"] == "activePolls":
            return httpx.Response(200, json={"data": {"activePolls": {"nodes": [
                {"pollId": 11, "startDate": 1_641_000_000},
            ]}}})
        assert body["variables"] == {"argPollId": 11}
        return httpx.Response(200, json={"data": {"uniqueVoters": {"nodes": ["42"]}}})

    gateway = make_gateway(handler)
    polls = await gateway.get_polls()
    voters = await gateway.get_unique_voters(polls[0].pollId)

    assert polls[0].pollId == 11
    assert polls[0].startDate.year == 2022
    assert voters == 42
