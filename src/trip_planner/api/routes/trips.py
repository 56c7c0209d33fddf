"""Trip planning endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status

from ...schemas.planning import PlanRequest, PlanResponse
from ...services.planning.errors import InternalPlannerError
from ...services.planning.service import plan_trip

router = APIRouter(prefix="/trips", tags=["trips"])


@router.post("/plan", response_model=PlanResponse, status_code=status.HTTP_200_OK)
def plan(payload: PlanRequest, request: Request) -> PlanResponse:
    """Plan a multi-day route. Infeasible plans are returned with ``ok: false``."""
    try:
        return plan_trip(payload, routing_cache=getattr(request.app.state, "routing_cache", None))
    except InternalPlannerError as exc:
        logging.exception(f"Internal error while planning trip: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to plan trip: {exc}",
        ) from exc
