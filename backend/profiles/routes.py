"""
Profile API Routes

Provides endpoints for:
- Profile lookup (cached, rate limited on provider calls)
- Serving cached avatar/banner images
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from core.context import AppContext
from core.dependencies import client_key, get_context
from cache.disk_store import is_valid_asset_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["profiles"])


@router.get("/user/{username}")
async def get_user(
    username: str,
    request: Request,
    context: AppContext = Depends(get_context),
):
    """
    Profile payload for the card page

    Cached responses skip the daily provider limit entirely.
    """
    return await context.profiles.lookup(username, client_key(request))


@router.get("/images/{asset_id}")
async def get_image(asset_id: str, context: AppContext = Depends(get_context)):
    """Serve a cached avatar/banner image"""
    if not is_valid_asset_id(asset_id):
        raise HTTPException(status_code=400, detail="Invalid image id")

    record = await context.disk_cache.get(asset_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Image not found")

    return Response(
        content=record.value,
        media_type=record.content_type,
        headers={"Cache-Control": "no-store"},
    )
