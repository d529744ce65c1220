"""
Error taxonomy for GovMetrics.

GovernanceMetricsError (base)
├── UpstreamFetchError        fatal, propagated to the caller
├── MissingBlockTimestamp     stake record skipped, aggregation continues
└── UnknownDelegateReference  per-delegate balance view unavailable
"""
from typing import Optional


class GovernanceMetricsError(Exception):
    """Base exception for all aggregation errors."""


class UpstreamFetchError(GovernanceMetricsError):
    """
    A raw data source failed or returned a malformed payload.
    """

    def __init__(self, source: str, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.status_code = status_code


class MissingBlockTimestamp(GovernanceMetricsError):
    def __init__(self, block_number: int) -> None:
        super().__init__(f"no timestamp resolved for block {block_number}")
        self.block_number = block_number


class UnknownDelegateReference(GovernanceMetricsError):
    def __init__(self, delegate: Optional[str]) -> None:
        super().__init__(f"delegation references unknown delegate {delegate}")
        self.delegate = delegate
