# api/routes_summary.py
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse

from api.routes_registrations import get_container
from core.container import ServiceContainer
from core.response import ok

router = APIRouter()


@router.get("/vapid", response_class=PlainTextResponse)
async def vapid_public_key(container: ServiceContainer = Depends(get_container)):
    """Base64url VAPID public key, used by browsers as applicationServerKey."""
    return container.settings.VAPID_PUBLIC_KEY_BASE64 or ""


@router.get("/locations")
async def list_locations(container: ServiceContainer = Depends(get_container)):
    return ok([
        {"key": loc.key, "name": loc.display_name, "timezone": loc.tz_name}
        for loc in container.locations.values()
    ])


@router.get("/summaries/{location}")
async def get_summary(location: str, container: ServiceContainer = Depends(get_container)):
    """
    Latest summary for a location.

    - 404: not a supported location.
    - 503: supported, but no summary has been generated yet (warm-up pending).
    """
    loc = container.locations.get(location)
    if loc is None:
        raise HTTPException(status_code=404, detail="Unknown location")
    summary = container.cache.get(location)
    if summary is None:
        raise HTTPException(status_code=503, detail="Summary not generated yet")
    return ok({
        "location": loc.key,
        "name": loc.display_name,
        "summary": summary.text,
        "generated_at": summary.generated_at.isoformat() if summary.generated_at else None,
    })
