import os
from decimal import Decimal

from pydantic import BaseModel

OTHERS_NODE = "others"


class AggregationPolicy(BaseModel):
    """
    Thresholds applied by the classifier and the flow-graph builder.
    """
    # Delegators at or above this total keep their own sankey node
    large_delegator_threshold: Decimal = Decimal("500")
    # Balances below this are dropped from the grouped classification
    materiality_floor: Decimal = Decimal("0.01")

    @classmethod
    def from_env(cls) -> "AggregationPolicy":
        # pydantic rejects malformed values with the offending field named
        return cls(
            large_delegator_threshold=os.getenv("GOVMETRICS_LARGE_DELEGATOR_THRESHOLD", "500"),
            materiality_floor=os.getenv("GOVMETRICS_MATERIALITY_FLOOR", "0.01"),
        )
