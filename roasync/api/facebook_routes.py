"""ROASYNC — Facebook Campaign Action Routes.

One endpoint dispatching on ``action``. Requests are validated before any
call to Meta is made.
"""

from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from roasync.api.deps import get_http_client, get_user_id
from roasync.connectors.meta.endpoints import MetaEndpoints
from roasync.core.errors import InvalidInput
from roasync.core.logging import get_logger
from roasync.database import get_session
from roasync.sync.providers import FACEBOOK, get_integration, meta_client_for

logger = get_logger("api.facebook")

router = APIRouter(prefix="/facebook", tags=["Facebook"])

ACCOUNT_ACTIONS = ("list", "list_ad_accounts")
CAMPAIGN_ACTIONS = ("get_ad_sets", "get_creatives", "pause", "activate")
STATUS_BY_ACTION = {"pause": "PAUSED", "activate": "ACTIVE"}


class CampaignActionRequest(BaseModel):
    action: str
    """list | list_ad_accounts | get_ad_sets | get_creatives | pause | activate"""
    ad_account_id: Optional[str] = None
    campaign_id: Optional[str] = None
    integration_id: Optional[int] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"action": "list", "ad_account_id": "act_1234567890"},
                {"action": "pause", "campaign_id": "120200000000000001"},
            ]
        }
    }


def validate_action(request: CampaignActionRequest) -> None:
    if request.action not in ACCOUNT_ACTIONS + CAMPAIGN_ACTIONS:
        raise InvalidInput(
            f"Unknown action '{request.action}'. "
            f"Valid: {', '.join(ACCOUNT_ACTIONS + CAMPAIGN_ACTIONS)}"
        )
    if request.action in CAMPAIGN_ACTIONS:
        if not request.campaign_id or not request.campaign_id.isdigit():
            raise InvalidInput(
                f"campaign_id must be numeric for '{request.action}', "
                f"got {request.campaign_id!r}"
            )


@router.post("/campaigns")
async def campaign_action(
    request: CampaignActionRequest,
    user_id: str = Depends(get_user_id),
    session: Session = Depends(get_session),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
):
    validate_action(request)
    integration = get_integration(session, user_id, FACEBOOK, request.integration_id)

    async with meta_client_for(integration, http_client) as client:
        endpoints = MetaEndpoints(client)

        if request.action == "list_ad_accounts":
            accounts = await endpoints.list_ad_accounts()
            return {"status": "success", "ad_accounts": [a.model_dump() for a in accounts]}

        if request.action == "list":
            ad_account_id = request.ad_account_id or integration.meta.get("ad_account_id")
            if not ad_account_id:
                accounts = await endpoints.list_ad_accounts()
                if not accounts:
                    return {"status": "success", "campaigns": [], "ad_accounts": []}
                ad_account_id = accounts[0].id
            campaigns = await endpoints.list_campaigns(ad_account_id)
            campaigns = await endpoints.enrich_campaign_images(campaigns)
            return {
                "status": "success",
                "ad_account_id": ad_account_id,
                "campaigns": [c.model_dump() for c in campaigns],
            }

        if request.action == "get_ad_sets":
            return {
                "status": "success",
                "ad_sets": await endpoints.get_ad_sets(request.campaign_id),
            }

        if request.action == "get_creatives":
            return {
                "status": "success",
                "ads": await endpoints.get_creatives(request.campaign_id),
            }

        status = STATUS_BY_ACTION[request.action]
        success = await endpoints.update_campaign_status(request.campaign_id, status)
        return {
            "status": "success",
            "campaign_id": request.campaign_id,
            "campaign_status": status,
            "updated": success,
        }
