"""Advisory service boundary: request assembly, client and throttling."""

from race_engine.advisory.advisor import AdvisoryInputs, AdvisoryState, StrategyAdvisor
from race_engine.advisory.client import (
    AdvisoryClient,
    AdvisoryError,
    AnthropicAdvisoryClient,
    create_client,
)
from race_engine.advisory.schemas import (
    CompetitorAnalysis,
    CompetitorAnalysisRequest,
    DriverPitRequest,
    StrategyAdvice,
    TeamDriverStatus,
    TeamStrategyRequest,
    build_competitor_request,
    build_driver_request,
    build_team_request,
)

__all__ = [
    "AdvisoryClient",
    "AdvisoryError",
    "AdvisoryInputs",
    "AdvisoryState",
    "AnthropicAdvisoryClient",
    "CompetitorAnalysis",
    "CompetitorAnalysisRequest",
    "DriverPitRequest",
    "StrategyAdvice",
    "StrategyAdvisor",
    "TeamDriverStatus",
    "TeamStrategyRequest",
    "build_competitor_request",
    "build_driver_request",
    "build_team_request",
    "create_client",
]
