from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List

from sqlalchemy import Engine

from insigne_service.clients import ObjectStorage
from insigne_service.errors import UpstreamFailure
from insigne_service.models.responses import AssetLink
from insigne_service.storage.db import list_assets

logger = logging.getLogger("insigne_service")

DEFAULT_SIGNED_URL_TTL_SECONDS = 900


async def sign_asset(storage: ObjectStorage, asset_row: Dict[str, Any], ttl_seconds: int) -> AssetLink:
    link = AssetLink(
        asset_id=asset_row["id"],
        asset_type=asset_row.get("asset_type"),
        storage_path=asset_row.get("storage_path"),
    )
    if not link.storage_path:
        link.error = "Missing storage_path"
        return link
    try:
        link.signed_url = await storage.create_signed_url(link.storage_path, ttl_seconds)
    except UpstreamFailure as exc:
        link.error = exc.message
    except Exception as exc:
        logger.exception("asset_signing_failed asset_id=%s", link.asset_id)
        link.error = str(exc) or exc.__class__.__name__
    return link


async def issue_signed_urls(
    engine: Engine,
    storage: ObjectStorage,
    insigne_id: str,
    ttl_seconds: int = DEFAULT_SIGNED_URL_TTL_SECONDS,
) -> List[AssetLink]:
    """Sign every asset of ``insigne_id``; results keep the asset order.

    Each asset is signed independently, so a failing asset only fills in its
    own ``error``.
    """
    asset_rows = list_assets(engine, insigne_id)
    links = await asyncio.gather(*(sign_asset(storage, row, ttl_seconds) for row in asset_rows))
    failed = sum(1 for link in links if link.error)
    if failed:
        logger.warning(
            "asset_signing_partial insigne_id=%s total=%s failed=%s",
            insigne_id,
            len(links),
            failed,
        )
    return list(links)
