from decimal import Decimal
from typing import List

from pydantic import BaseModel


class DelegateAmount(BaseModel):
    delegate: str
    amount: Decimal


class DelegatorBreakdown(BaseModel):
    """
    Net amount a delegator has sent, in total and per delegate.
    """
    delegator: str
    totalDelegated: Decimal = Decimal(0)
    delegations: List[DelegateAmount] = []


class FlowNode(BaseModel):
    id: str


class FlowLink(BaseModel):
    source: str
    target: str
    value: Decimal


class FlowGraph(BaseModel):
    """
    Sankey-ready delegator -> delegate graph.
    """
    nodes: List[FlowNode] = []
    links: List[FlowLink] = []
