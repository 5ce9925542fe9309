"""ROASYNC — Decision Routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlmodel import Session

from roasync.analyzer.decision_engine import apply_decisions, evaluate_campaigns
from roasync.api.deps import get_user_id
from roasync.database import get_session

router = APIRouter(prefix="/decisions", tags=["Decisions"])


class ApplyDecisionsRequest(BaseModel):
    market: str = "low"
    campaign_id: Optional[str] = None


@router.get("")
async def get_decisions(
    market: str = Query("low", description="low | mid | high"),
    campaign_id: Optional[str] = Query(None),
    user_id: str = Depends(get_user_id),
    session: Session = Depends(get_session),
):
    """Evaluate campaign windows without persisting anything."""
    report = evaluate_campaigns(session, user_id, market, campaign_id)
    return {"status": "success", **report.model_dump()}


@router.post("/apply")
async def post_apply_decisions(
    request: ApplyDecisionsRequest,
    user_id: str = Depends(get_user_id),
    session: Session = Depends(get_session),
):
    """Evaluate and write decision + reason onto the daily records."""
    report = apply_decisions(session, user_id, request.market, request.campaign_id)
    return {"status": "success", **report.model_dump()}
