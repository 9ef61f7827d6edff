from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from checkout.api.schemas.payments import ProviderHealthResponse
from checkout.core.config import Settings
from checkout.core.constants import SERVICE_NAME
from checkout.payments.dependencies import get_gateway_service
from checkout.payments.enums import ProviderHealthStatus
from checkout.payments.service import PaymentGatewayService

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: Literal["ok"]
    service: str
    version: str
    environment: str
    timestamp: datetime
    polling_active: int


class ProvidersHealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    timestamp: datetime
    providers: list[ProviderHealthResponse]


@router.get("", response_model=HealthResponse, summary="Service liveness check")
async def health(request: Request) -> HealthResponse:
    settings: Settings = request.app.state.settings
    polling = getattr(request.app.state, "payment_polling", None)
    return HealthResponse(
        status="ok",
        service=SERVICE_NAME,
        version=settings.project_version,
        environment=settings.environment.value,
        timestamp=datetime.now(UTC),
        polling_active=len(polling.get_pending_payments()) if polling else 0,
    )


@router.get(
    "/providers",
    response_model=ProvidersHealthResponse,
    summary="Reachability of each configured payment provider",
)
async def providers_health(
    gateway: PaymentGatewayService = Depends(get_gateway_service),
) -> ProvidersHealthResponse:
    reports = await gateway.provider_health()
    healthy = all(report.status is ProviderHealthStatus.HEALTHY for report in reports)
    return ProvidersHealthResponse(
        status="ok" if healthy else "degraded",
        timestamp=datetime.now(UTC),
        providers=[ProviderHealthResponse.model_validate(report) for report in reports],
    )
