import logging
from typing import AsyncIterator, List

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from govmetrics.core.entities.balance import DelegateBalanceSnapshot, Snapshot
from govmetrics.core.entities.delegate import GroupedBalances
from govmetrics.core.entities.poll import PollVotersData
from govmetrics.core.errors import UpstreamFetchError
from govmetrics.core.interfaces.datasource import IGovernanceSource
from govmetrics.core.policy import AggregationPolicy
from govmetrics.core.services import (
    DashboardResponse,
    GovernanceDataResponse,
    GovernanceService,
    StakedMkrResponse,
)
from govmetrics.infrastructure.gateways.maker_governance_api import MakerGovernanceGateway

# Setup Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("GovMetrics")

# Read once so a bad configuration fails at startup
policy = AggregationPolicy.from_env()

app = FastAPI(
    title="GovMetrics API",
    version="1.0.0",
    description="Delegation, stake and poll participation metrics for MakerDAO governance",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Dependency Injection ---

async def get_datasource() -> AsyncIterator[IGovernanceSource]:
    gateway = MakerGovernanceGateway()
    try:
        yield gateway
    finally:
        await gateway.aclose()


def get_service(datasource: IGovernanceSource = Depends(get_datasource)) -> GovernanceService:
    return GovernanceService(datasource, policy)

# --- Error Handling ---

@app.exception_handler(UpstreamFetchError)
async def upstream_fetch_error_handler(request: Request, exc: UpstreamFetchError):
    # No partial charts: the whole view fails
    logger.error(f"Upstream fetch failed for {request.url.path}: {exc}")
    return JSONResponse(
        status_code=502,
        content={"detail": f"Upstream data source failed: {exc.source}"},
    )

# --- Endpoints ---

@app.get("/health")
async def health():
    return {"status": "healthy"}


@app.get("/v1/governance", response_model=GovernanceDataResponse)
async def get_governance(service: GovernanceService = Depends(get_service)):
    """
    Delegate ranking, delegated MKR running total and sankey data.
    """
    return await service.get_governance_data()


@app.get("/v1/staked", response_model=StakedMkrResponse)
async def get_staked(service: GovernanceService = Depends(get_service)):
    return await service.get_staked_mkr()


@app.get("/v1/balances", response_model=List[Snapshot])
async def get_balances(service: GovernanceService = Depends(get_service)):
    """
    Daily per-account stake + delegation balance history.
    """
    return await service.get_user_balances()


@app.get("/v1/balances/grouped", response_model=GroupedBalances)
async def get_grouped_balances(service: GovernanceService = Depends(get_service)):
    return await service.get_grouped_balances()


@app.get("/v1/delegates/balances", response_model=List[DelegateBalanceSnapshot])
async def get_delegate_balances(service: GovernanceService = Depends(get_service)):
    history = await service.get_delegate_balances()
    if history is None:
        raise HTTPException(status_code=404, detail="Delegate balance history unavailable")
    return history


@app.get("/v1/polls/voters", response_model=List[PollVotersData])
async def get_poll_voters(service: GovernanceService = Depends(get_service)):
    return await service.get_poll_voters()


@app.get("/v1/dashboard", response_model=DashboardResponse)
async def get_dashboard(service: GovernanceService = Depends(get_service)):
    """
    Every view from a single collection pass.
    """
    return await service.get_dashboard()
