"""ROASYNC — Integration Lookup & Client Construction.

Resolves a tenant's integration and builds a provider client with the
decrypted access token.
"""

from typing import Optional

import httpx
from sqlmodel import Session, select

from roasync.config import settings
from roasync.connectors.meta.client import MetaClient
from roasync.connectors.shopify.client import ShopifyClient, shop_domain
from roasync.core.errors import AuthError
from roasync.models.db_models import Integration
from roasync.security.token_vault import decrypt_token

SHOPIFY = "shopify"
FACEBOOK = "facebook_ads"
PROVIDERS = (SHOPIFY, FACEBOOK)


def get_integration(
    session: Session,
    user_id: str,
    provider: str,
    integration_id: Optional[int] = None,
) -> Integration:
    """Active integration of ``provider`` for the user.

    Without an id the most recently created one is used.
    """
    query = select(Integration).where(
        Integration.user_id == user_id,
        Integration.provider == provider,
        Integration.is_active == True,  # noqa: E712
    )
    if integration_id is not None:
        query = query.where(Integration.id == integration_id)
    integration = session.exec(query.order_by(Integration.created_at.desc())).first()
    if integration is None:
        raise AuthError(f"No active {provider} integration found")
    return integration


def store_currency(integration: Integration) -> str:
    return (integration.meta or {}).get("store_currency") or settings.reporting_currency


def shopify_client_for(
    integration: Integration, http_client: Optional[httpx.AsyncClient] = None
) -> ShopifyClient:
    return ShopifyClient(
        shop_domain(integration.meta or {}),
        decrypt_token(integration.access_token),
        http_client=http_client,
    )


def meta_client_for(
    integration: Integration, http_client: Optional[httpx.AsyncClient] = None
) -> MetaClient:
    return MetaClient(decrypt_token(integration.access_token), http_client=http_client)
