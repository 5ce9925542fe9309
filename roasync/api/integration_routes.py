"""ROASYNC — Integration Routes."""

from datetime import datetime
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from roasync.analyzer.matcher import match_store_to_ad_account
from roasync.api.deps import get_http_client, get_user_id
from roasync.connectors.meta.endpoints import MetaEndpoints
from roasync.core.errors import InvalidInput, NotFound
from roasync.core.logging import get_logger
from roasync.database import get_session
from roasync.models.db_models import Integration, _utcnow
from roasync.security.token_vault import get_vault, store_integration_token
from roasync.sync.providers import (
    FACEBOOK,
    PROVIDERS,
    SHOPIFY,
    get_integration,
    meta_client_for,
)

logger = get_logger("api.integrations")

router = APIRouter(prefix="/integrations", tags=["Integrations"])


# ── Request Models ──


class ConnectIntegrationRequest(BaseModel):
    provider: str
    """shopify | facebook_ads"""
    access_token: str
    expires_at: Optional[datetime] = None
    meta: Dict[str, Any] = {}
    """Shopify: myshopify_domain or store_name. Facebook: optional ad_account_id."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "provider": "shopify",
                    "access_token": "shpat_xxx",
                    "meta": {"myshopify_domain": "mycoolshop.myshopify.com"},
                },
                {
                    "provider": "facebook_ads",
                    "access_token": "EAAB...",
                    "meta": {"ad_account_id": "act_1234567890"},
                },
            ]
        }
    }


def _owned(session: Session, user_id: str, integration_id: int) -> Integration:
    integration = session.exec(
        select(Integration).where(
            Integration.id == integration_id, Integration.user_id == user_id
        )
    ).first()
    if integration is None:
        raise NotFound(f"Integration {integration_id} not found")
    return integration


def _public(integration: Integration) -> Dict[str, Any]:
    return {
        "id": integration.id,
        "provider": integration.provider,
        "is_active": integration.is_active,
        "meta": integration.meta,
        "expires_at": integration.expires_at,
    }


# ── Endpoints ──


@router.post("", status_code=201)
async def connect_integration(
    request: ConnectIntegrationRequest,
    user_id: str = Depends(get_user_id),
    session: Session = Depends(get_session),
):
    """Connect a Shopify store or Facebook ad account; the token is encrypted."""
    if request.provider not in PROVIDERS:
        raise InvalidInput(
            f"Unknown provider '{request.provider}'. Valid: {', '.join(PROVIDERS)}"
        )
    if not request.access_token.strip():
        raise InvalidInput("access_token must not be empty")
    if request.provider == SHOPIFY and not (
        request.meta.get("myshopify_domain") or request.meta.get("store_name")
    ):
        raise InvalidInput("Shopify integrations need myshopify_domain or store_name")

    integration = Integration(
        user_id=user_id,
        provider=request.provider,
        expires_at=request.expires_at,
        meta=dict(request.meta),
    )
    session.add(integration)
    session.flush()
    store_integration_token(session, integration, request.access_token.strip())
    session.commit()
    session.refresh(integration)

    logger.info(
        f"Connected {integration.provider} integration",
        extra={"integration_id": integration.id},
    )
    return {
        "status": "success",
        "integration": _public(integration),
        "encrypted": get_vault().enabled,
    }


@router.delete("/{integration_id}")
async def disconnect_integration(
    integration_id: int,
    user_id: str = Depends(get_user_id),
    session: Session = Depends(get_session),
):
    """Soft-remove: synced data keeps referencing the integration."""
    integration = _owned(session, user_id, integration_id)
    integration.is_active = False
    integration.updated_at = _utcnow()
    session.add(integration)
    session.commit()
    logger.info("Integration deactivated", extra={"integration_id": integration_id})
    return {"status": "success", "integration": _public(integration)}


@router.get("/{integration_id}/ad-account-match")
async def match_ad_account(
    integration_id: int,
    user_id: str = Depends(get_user_id),
    session: Session = Depends(get_session),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
):
    """Suggest the Facebook ad account whose name best matches a Shopify store."""
    store = _owned(session, user_id, integration_id)
    if store.provider != SHOPIFY or not store.is_active:
        raise InvalidInput("Ad account matching needs an active Shopify integration")
    facebook = get_integration(session, user_id, FACEBOOK)

    async with meta_client_for(facebook, http_client) as client:
        accounts = await MetaEndpoints(client).list_ad_accounts()

    store_name = store.meta.get("store_name") or store.meta.get("myshopify_domain", "")
    result = match_store_to_ad_account(store_name, accounts)
    account = next((a for a in accounts if a.id == result.match_id), None)
    return {
        "status": "success",
        "store": store_name,
        "match": result.model_dump(),
        "ad_account": account.model_dump() if account else None,
    }
