import logging
import os
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import httpx
from pydantic import ValidationError

from govmetrics.core.entities.delegate import DelegateMetadata, DelegateRosterEntry
from govmetrics.core.entities.event import DelegationRecord, StakeRecord
from govmetrics.core.entities.poll import PollRosterEntry
from govmetrics.core.errors import UpstreamFetchError
from govmetrics.core.interfaces.datasource import IGovernanceSource

logger = logging.getLogger(__name__)

POLLING_DB_URL = "https://pollingdb2-mainnet-prod.makerdux.com/api/v1"
DELEGATES_METADATA_URL = "https://vote.makerdao.com/api/delegates/names"
BLOCKS_SUBGRAPH_URL = "https://api.thegraph.com/subgraphs/name/blocklytics/ethereum-blocks"
ETH_RPC_URL = "https://cloudflare-eth.com"
CHIEF_ADDRESS = "0x0a3f6849f78076aefaDf113F5BED87720274dDC0"

# DSNote signatures of DSChief.lock(uint256) / DSChief.free(uint256)
LOCK_TOPIC = "0xdd46706400000000000000000000000000000000000000000000000000000000"
FREE_TOPIC = "0xd8ccd0f300000000000000000000000000000000000000000000000000000000"
CHIEF_FROM_BLOCK = 0x487813

MKR_SCALE = Decimal(10) ** 18
BLOCK_BATCH_SIZE = 1000

ALL_DELEGATES_QUERY = """
query allDelegates {
  allDelegates {
    nodes {
      blockTimestamp
      voteDelegate
    }
  }
}
"""

DELEGATE_LOCKS_QUERY = """
query mkrLockedDelegateArrayTotalsV2($argAddress: [String]!, $argUnixTimeStart: Int!, $argUnixTimeEnd: Int!) {
  mkrLockedDelegateArrayTotalsV2(argAddress: $argAddress, argUnixTimeStart: $argUnixTimeStart, argUnixTimeEnd: $argUnixTimeEnd) {
    nodes {
      fromAddress
      blockTimestamp
      lockAmount
      lockTotal
      immediateCaller
    }
  }
}
"""

ACTIVE_POLLS_QUERY = """
query activePolls {
  activePolls {
    nodes {
      pollId
      startDate
    }
  }
}
"""

UNIQUE_VOTERS_QUERY = """
query uniqueVoters($argPollId: Int!) {
  uniqueVoters(argPollId: $argPollId) {
    nodes
  }
}
"""

TOO_MANY_LOGS_HINTS = (
    "more than",
    "too many results",
    "response size exceeded",
    "query returned more than",
    "block range too wide",
)


def _topic_to_address(topic: str) -> str:
    if not topic.startswith("0x") or len(topic) != 66:
        raise ValueError(f"unexpected topic format: {topic}")
    return "0x" + topic[-40:]


class MakerGovernanceGateway(IGovernanceSource):
    """
    Implementation of IGovernanceSource over the public MakerDAO endpoints:
    the polling database (GraphQL), the voting portal delegate names API,
    an Ethereum JSON-RPC node for DSChief logs and a blocks subgraph for
    block timestamps.

    Every failure surfaces as UpstreamFetchError; nothing is retried here.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout_s: float = 45.0):
        self.polling_db_url = os.getenv("POLLING_DB_URL", POLLING_DB_URL)
        self.metadata_url = os.getenv("DELEGATES_METADATA_URL", DELEGATES_METADATA_URL)
        self.blocks_url = os.getenv("BLOCKS_SUBGRAPH_URL", BLOCKS_SUBGRAPH_URL)
        self.rpc_url = os.getenv("ETH_RPC_URL", ETH_RPC_URL)
        self.chief_address = os.getenv("CHIEF_ADDRESS", CHIEF_ADDRESS)

        self.client = client or httpx.AsyncClient(
            timeout=timeout_s,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
        )
        self._rpc_id = 0
        logger.info(f"MakerGovernanceGateway initialized. Polling DB: {self.polling_db_url}")

    async def aclose(self):
        await self.client.aclose()

    # --- transport ---

    async def _request_json(self, source: str, method: str, url: str, **kwargs) -> Any:
        try:
            resp = await self.client.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"{source} returned HTTP {e.response.status_code}")
            raise UpstreamFetchError(source, f"HTTP {e.response.status_code}", status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.error(f"{source} transport error: {e}")
            raise UpstreamFetchError(source, f"transport error: {e}") from e
        except ValueError as e:
            logger.error(f"{source} returned invalid JSON: {e}")
            raise UpstreamFetchError(source, "invalid JSON") from e

    async def _graphql(self, source: str, url: str, query: str, operation_name: Optional[str] = None,
                       variables: Optional[dict] = None) -> dict:
        body: Dict[str, Any] = {"query": query}
        if operation_name:
            body["operationName"] = operation_name
        if variables is not None:
            body["variables"] = variables

        payload = await self._request_json(source, "POST", url, json=body)
        if not isinstance(payload, dict) or payload.get("errors") or not isinstance(payload.get("data"), dict):
            errors = payload.get("errors") if isinstance(payload, dict) else payload
            logger.error(f"{source} GraphQL error: {errors}")
            raise UpstreamFetchError(source, f"GraphQL error: {errors}")
        return payload["data"]

    async def _rpc(self, method: str, params: list) -> Any:
        self._rpc_id += 1
        payload = {"jsonrpc": "2.0", "id": self._rpc_id, "method": method, "params": params}
        data = await self._request_json("eth-rpc", "POST", self.rpc_url, json=payload)

        if not isinstance(data, dict):
            raise UpstreamFetchError("eth-rpc", f"invalid JSON-RPC response: {str(data)[:200]}")
        if data.get("error"):
            raise UpstreamFetchError("eth-rpc", str(data["error"]))
        return data.get("result")

    # --- delegates ---

    async def get_delegates(self) -> List[DelegateRosterEntry]:
        data = await self._graphql("polling-db", self.polling_db_url, ALL_DELEGATES_QUERY, "allDelegates")
        try:
            nodes = data["allDelegates"]["nodes"]
            return [DelegateRosterEntry(**node) for node in nodes]
        except (KeyError, TypeError, ValidationError) as e:
            raise UpstreamFetchError("polling-db", f"malformed delegate roster: {e}") from e

    async def get_delegations(self, vote_delegate: str) -> List[DelegationRecord]:
        variables = {
            "argAddress": [vote_delegate],
            "argUnixTimeStart": 0,
            "argUnixTimeEnd": int(time.time()),
        }
        data = await self._graphql(
            "polling-db", self.polling_db_url, DELEGATE_LOCKS_QUERY,
            "mkrLockedDelegateArrayTotalsV2", variables,
        )
        try:
            nodes = data["mkrLockedDelegateArrayTotalsV2"]["nodes"]
        except (KeyError, TypeError) as e:
            raise UpstreamFetchError("polling-db", f"malformed delegation payload for {vote_delegate}") from e

        return self._map_nodes_to_delegations(nodes, vote_delegate)

    def _map_nodes_to_delegations(self, nodes: List[dict], vote_delegate: str) -> List[DelegationRecord]:
        """
        The per-delegate query reports the delegator as immediateCaller;
        remap so fromAddress is the delegator and immediateCaller the
        delegate contract being queried.
        """
        records = []
        for node in nodes:
            try:
                records.append(DelegationRecord(
                    fromAddress=node["immediateCaller"],
                    immediateCaller=vote_delegate,
                    lockAmount=Decimal(str(node["lockAmount"])),
                    lockTotal=Decimal(str(node.get("lockTotal") or 0)),
                    blockTimestamp=node["blockTimestamp"],
                ))
            except (KeyError, TypeError, ArithmeticError, ValidationError) as e:
                # a dropped delegation would corrupt every running total downstream
                raise UpstreamFetchError("polling-db", f"malformed delegation record: {e}") from e
        return records

    async def get_delegates_metadata(self) -> List[DelegateMetadata]:
        payload = await self._request_json("delegates-metadata", "GET", self.metadata_url)
        if not isinstance(payload, list):
            raise UpstreamFetchError("delegates-metadata", "expected a list of delegates")

        metadata = []
        for entry in payload:
            try:
                metadata.append(DelegateMetadata(**entry))
            except (TypeError, ValidationError) as e:
                logger.warning(f"Skipping malformed delegate metadata: {e}")
                continue
        return metadata

    # --- stake ---

    async def _get_logs_range(self, topics: List[str], from_block: int, to_block: int, max_splits: int = 24) -> List[dict]:
        params = {
            "address": self.chief_address,
            "topics": [topics],
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }
        try:
            return await self._rpc("eth_getLogs", [params]) or []
        except UpstreamFetchError as e:
            msg = str(e).lower()
            too_many = any(hint in msg for hint in TOO_MANY_LOGS_HINTS)
            if not too_many or max_splits <= 0 or from_block >= to_block:
                raise

            mid = (from_block + to_block) // 2
            left = await self._get_logs_range(topics, from_block, mid, max_splits - 1)
            right = await self._get_logs_range(topics, mid + 1, to_block, max_splits - 1)
            return left + right

    async def get_stake_records(self) -> List[StakeRecord]:
        latest = await self._rpc("eth_blockNumber", [])
        try:
            latest_block = int(latest, 16)
        except (TypeError, ValueError) as e:
            raise UpstreamFetchError("eth-rpc", f"invalid block number: {latest!r}") from e

        logs = await self._get_logs_range([LOCK_TOPIC, FREE_TOPIC], CHIEF_FROM_BLOCK, latest_block)
        return self._map_logs_to_stake_records(logs)

    def _map_logs_to_stake_records(self, logs: List[dict]) -> List[StakeRecord]:
        records = []
        for log in logs:
            try:
                topics = log["topics"]
                wad = Decimal(int(topics[2], 16)) / MKR_SCALE
                amount = wad if topics[0] == LOCK_TOPIC else -wad
                records.append(StakeRecord(
                    blockNumber=int(log["blockNumber"], 16),
                    sender=_topic_to_address(topics[1]),
                    amount=amount,
                ))
            except (KeyError, IndexError, TypeError, ValueError) as e:
                raise UpstreamFetchError("eth-rpc", f"malformed DSChief log: {e}") from e

        records.sort(key=lambda r: r.blockNumber)
        return records

    async def get_block_timestamps(self, block_numbers: Iterable[int]) -> Dict[int, int]:
        numbers = sorted(set(block_numbers))
        block_times: Dict[int, int] = {}

        for start in range(0, len(numbers), BLOCK_BATCH_SIZE):
            batch = numbers[start:start + BLOCK_BATCH_SIZE]
            query = (
                f"{{ blocks(first: {len(batch)}, where: {{number_in: {batch}}}) "
                f"{{ number timestamp }} }}"
            )
            data = await self._graphql("blocks-subgraph", self.blocks_url, query)
            try:
                for block in data["blocks"]:
                    block_times[int(block["number"])] = int(block["timestamp"])
            except (KeyError, TypeError, ValueError) as e:
                raise UpstreamFetchError("blocks-subgraph", f"malformed blocks payload: {e}") from e

        logger.info(f"Resolved {len(block_times)}/{len(numbers)} block timestamps")
        return block_times

    # --- polls ---

    async def get_polls(self) -> List[PollRosterEntry]:
        data = await self._graphql("polling-db", self.polling_db_url, ACTIVE_POLLS_QUERY, "activePolls")
        try:
            return [
                PollRosterEntry(
                    pollId=int(node["pollId"]),
                    startDate=datetime.fromtimestamp(int(node["startDate"]), tz=timezone.utc),
                )
                for node in data["activePolls"]["nodes"]
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamFetchError("polling-db", f"malformed poll roster: {e}") from e

    async def get_unique_voters(self, poll_id: int) -> int:
        data = await self._graphql(
            "polling-db", self.polling_db_url, UNIQUE_VOTERS_QUERY,
            "uniqueVoters", {"argPollId": poll_id},
        )
        try:
            return int(data["uniqueVoters"]["nodes"][0])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise UpstreamFetchError("polling-db", f"malformed unique voters for poll {poll_id}: {e}") from e
