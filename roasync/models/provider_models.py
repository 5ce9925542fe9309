"""ROASYNC — Provider Response Schemas.

Provider JSON is validated into these models right after fetch; loosely-typed
payloads never reach the metrics or decision layers. Each record carries a
``source`` tag so mixed pages stay distinguishable.
"""

from datetime import datetime
from typing import Any, Generic, Iterable, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from roasync.core.logging import get_logger

logger = get_logger("models.provider")

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


def _zero_if_none(value: Any) -> Any:
    return 0 if value in (None, "") else value


class Page(BaseModel, Generic[T]):
    """One page of normalized records plus the continuation cursor."""

    records: List[T] = []
    next_cursor: Optional[str] = None


def validate_rows(
    model: Type[M],
    rows: Iterable[Any],
    rejected: Optional[List[str]] = None,
) -> List[M]:
    """Validate each row on its own. A malformed row is logged, noted in
    ``rejected`` and dropped; the rest of the page survives."""
    valid: List[M] = []
    for row in rows:
        try:
            valid.append(model.model_validate(row))
        except ValidationError as e:
            ref = (row.get("id") or row.get("campaign_id")) if isinstance(row, dict) else None
            label = f"{model.__name__} {ref}" if ref else model.__name__
            fields = ", ".join(
                ".".join(str(p) for p in err["loc"]) or "row" for err in e.errors()
            )
            message = f"{label} rejected, invalid: {fields}"
            logger.warning(message)
            if rejected is not None:
                rejected.append(message)
    return valid


# ─────────────────────────────────────────────
# SHOPIFY
# ─────────────────────────────────────────────


class ShopifyLineItem(BaseModel):
    model_config = {"extra": "ignore"}

    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    title: str = ""
    variant_title: Optional[str] = None
    quantity: int = 1
    price: float = 0.0
    sku: Optional[str] = None

    _coerce = field_validator("price", "quantity", mode="before")(_zero_if_none)


class ShopifyRefundLineItem(BaseModel):
    model_config = {"extra": "ignore"}

    subtotal: float = 0.0

    _coerce = field_validator("subtotal", mode="before")(_zero_if_none)


class ShopifyRefund(BaseModel):
    model_config = {"extra": "ignore"}

    refund_line_items: List[ShopifyRefundLineItem] = []


class ShopifyOrder(BaseModel):
    model_config = {"extra": "ignore"}

    source: Literal["shopify_order"] = "shopify_order"
    id: int
    created_at: datetime
    financial_status: Optional[str] = None
    total_price: float = 0.0
    currency: Optional[str] = None
    presentment_currency: Optional[str] = None
    line_items: List[ShopifyLineItem] = []
    refunds: List[ShopifyRefund] = []

    _coerce = field_validator("total_price", mode="before")(_zero_if_none)

    @property
    def order_date(self) -> str:
        """Calendar date the order was placed (not the sync date)."""
        return self.created_at.date().isoformat()

    @property
    def is_paid(self) -> bool:
        return self.financial_status in ("paid", "partially_paid")

    @property
    def refunded_amount(self) -> float:
        return sum(
            item.subtotal for refund in self.refunds for item in refund.refund_line_items
        )


class ShopifyProductDetail(BaseModel):
    """Flattened product lookup: image + first variant inventory item."""

    source: Literal["shopify_product"] = "shopify_product"
    id: int
    title: str = ""
    image_url: Optional[str] = None
    inventory_item_id: Optional[int] = None

    @classmethod
    def from_payload(cls, product: dict) -> "ShopifyProductDetail":
        images = product.get("images") or []
        image_url = None
        if images and images[0].get("src"):
            image_url = images[0]["src"]
        elif (product.get("image") or {}).get("src"):
            image_url = product["image"]["src"]
        variants = product.get("variants") or []
        inventory_item_id = variants[0].get("inventory_item_id") if variants else None
        return cls(
            id=product["id"],
            title=product.get("title", ""),
            image_url=image_url,
            inventory_item_id=inventory_item_id,
        )


class ShopifyShop(BaseModel):
    model_config = {"extra": "ignore"}

    name: str = ""
    domain: Optional[str] = None
    myshopify_domain: Optional[str] = None
    currency: Optional[str] = None


# ─────────────────────────────────────────────
# META (FACEBOOK ADS)
# ─────────────────────────────────────────────


class MetaAction(BaseModel):
    model_config = {"extra": "ignore"}

    action_type: str = ""
    value: float = 0.0

    _coerce = field_validator("value", mode="before")(_zero_if_none)


PURCHASE_ACTIONS = ("purchase", "offsite_conversion.fb_pixel_purchase")
ADD_TO_CART_ACTIONS = ("add_to_cart", "offsite_conversion.fb_pixel_add_to_cart")


class MetaInsightRow(BaseModel):
    """One campaign-day of insights (``time_increment=1``)."""

    model_config = {"extra": "ignore"}

    source: Literal["meta_insight"] = "meta_insight"
    campaign_id: str
    campaign_name: str = ""
    date_start: str
    date_stop: Optional[str] = None
    spend: float = 0.0
    clicks: int = 0
    impressions: int = 0
    actions: List[MetaAction] = []

    _coerce = field_validator("spend", "clicks", "impressions", mode="before")(
        _zero_if_none
    )

    def _action_total(self, types: tuple) -> int:
        # Meta reports the pixel and the generic action for the same event;
        # take the first type present instead of summing both.
        for action_type in types:
            for action in self.actions:
                if action.action_type == action_type:
                    return int(action.value)
        return 0

    @property
    def purchases(self) -> int:
        return self._action_total(PURCHASE_ACTIONS)

    @property
    def add_to_cart(self) -> int:
        return self._action_total(ADD_TO_CART_ACTIONS)


class MetaAdAccount(BaseModel):
    model_config = {"extra": "ignore"}

    source: Literal["meta_ad_account"] = "meta_ad_account"
    id: str
    name: str = ""
    account_id: Optional[str] = None
    account_status: Optional[int] = None
    currency: Optional[str] = None


class MetaCampaign(BaseModel):
    model_config = {"extra": "ignore"}

    source: Literal["meta_campaign"] = "meta_campaign"
    id: str
    name: str = ""
    status: Optional[str] = None
    objective: Optional[str] = None
    daily_budget: Optional[str] = None
    lifetime_budget: Optional[str] = None
    created_time: Optional[str] = None
    image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None


class MetaCreativeImage(BaseModel):
    campaign_id: str
    image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None

    @classmethod
    def from_creative(cls, campaign_id: str, creative: dict) -> "MetaCreativeImage":
        image = creative.get("image_url") or creative.get("thumbnail_url")
        thumb = creative.get("thumbnail_url") or creative.get("image_url")
        if not image:
            spec = creative.get("object_story_spec") or {}
            image = (spec.get("link_data") or {}).get("image_url") or (
                spec.get("video_data") or {}
            ).get("image_url")
            thumb = image
        return cls(campaign_id=campaign_id, image_url=image, thumbnail_url=thumb)

    @property
    def found(self) -> bool:
        return bool(self.image_url or self.thumbnail_url)


class FxRatesPayload(BaseModel):
    """open.er-api.com style response."""

    model_config = {"extra": "ignore"}

    result: str = ""
    base_code: Optional[str] = None
    rates: dict = Field(default_factory=dict)
