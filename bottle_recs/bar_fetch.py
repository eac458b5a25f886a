from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from loguru import logger
from pydantic import ValidationError

from .config import (
    BAR_API_BASE,
    HTTP_CONNECT_TIMEOUT,
    HTTP_READ_TIMEOUT,
    HTTP_USER_AGENT,
    Bottle,
)


_REQUIRED_FIELDS = {"id", "name"}


def normalize_bar_item(item: Dict[str, Any]) -> Optional[Bottle]:
    """
    Map one bar record (``{"product": {...}, ...}``) to a ``Bottle``.

    ABV is derived as proof / 2 when proof is known.  Records without a
    product or a valid id are skipped (``None``); any other field that
    fails validation is dropped so the bottle keeps its defaults there.
    """
    product = item.get("product") if isinstance(item, dict) else None
    if not isinstance(product, dict) or product.get("id") is None:
        return None

    proof = product.get("proof")
    fields = {
        "id": product["id"],
        "name": product.get("name") or "Unknown",
        "size": product.get("size"),
        "proof": proof,
        "abv": proof / 2 if isinstance(proof, (int, float)) else None,
        "spirit_type": product.get("spirit") or "",
        "brand_id": product.get("brand_id"),
        "popularity": product.get("popularity"),
        "image_url": product.get("image_url") or "",
        "avg_msrp": product.get("average_msrp"),
        "fair_price": product.get("fair_price"),
        "shelf_price": product.get("shelf_price"),
        "total_score": product.get("total_score"),
        "wishlist_count": product.get("wishlist_count"),
        "vote_count": product.get("vote_count"),
        "bar_count": product.get("bar_count"),
        "ranking": product.get("ranking"),
    }
    try:
        return Bottle(**fields)
    except ValidationError as e:
        invalid = {err["loc"][0] for err in e.errors() if err["loc"]}

    if invalid & _REQUIRED_FIELDS:
        logger.warning("Skipping bar item {}: invalid {}", product.get("id"), sorted(invalid))
        return None

    logger.warning("Bar item {}: ignoring invalid fields {}", product["id"], sorted(invalid))
    if "proof" in invalid:
        fields.pop("abv")
    for name in invalid:
        fields.pop(name, None)
    return Bottle(**fields)


def normalize_bar_response(payload: Any) -> List[Bottle]:
    if not isinstance(payload, list):
        logger.warning("Bar response is not a list (got {})", type(payload).__name__)
        return []
    bottles = [b for b in (normalize_bar_item(item) for item in payload) if b is not None]
    if len(bottles) != len(payload):
        logger.info("Normalized {} of {} bar items", len(bottles), len(payload))
    return bottles


async def fetch_user_bar(
    username: str,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[List[Bottle]]:
    """
    Fetch a user's bar from the bar-tracking service and normalize it.

    Returns ``None`` on any transport/HTTP/payload failure.
    """
    url = f"{BAR_API_BASE.rstrip('/')}/{quote(username, safe='')}"
    headers = {"User-Agent": HTTP_USER_AGENT, "Accept": "application/json"}

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(HTTP_READ_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT),
        )
    try:
        r = await client.get(url, headers=headers)
        if r.status_code >= 400:
            logger.warning("Bar fetch: HTTP {} for {}", r.status_code, username)
            return None
        payload = r.json()
    except httpx.TimeoutException:
        logger.warning("Bar fetch timeout for {}", username)
        return None
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Bar fetch exception for {}: {}", username, e)
        return None
    finally:
        if owns_client:
            await client.aclose()

    return normalize_bar_response(payload)
