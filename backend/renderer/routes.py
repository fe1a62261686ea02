"""
Card Image Routes

- GET /qr/{username}/image?w=&h=&scale=&theme= - Render (or serve cached) card PNG
"""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from core.context import AppContext
from core.dependencies import get_context
from core.errors import InvalidParameters
from core.handles import normalize_handle

logger = logging.getLogger(__name__)

router = APIRouter(tags=["card"])


@router.get("/qr/{username}/image")
async def card_image(
    username: str,
    w: str = Query("393"),
    h: str = Query("852"),
    scale: str = Query("3"),
    theme: str = Query("dark"),
    context: AppContext = Depends(get_context),
):
    """
    Download the profile card as PNG

    Only profiles already in the profile cache can be rendered.
    """
    try:
        width, height, factor = int(w), int(h), float(scale)
    except ValueError:
        logger.info(f"[Render] Invalid dimensions: w={w} h={h} scale={scale}")
        raise InvalidParameters("Invalid dimensions")

    theme = "light" if theme == "light" else "dark"
    image = await context.pipeline.render(username, width, height, factor, theme)
    handle = normalize_handle(username)

    return Response(
        content=image,
        media_type="image/png",
        headers={
            "Content-Disposition": f'attachment; filename="{handle}-qr.png"',
            "Cache-Control": "no-store",
        },
    )
