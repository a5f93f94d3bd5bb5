# api/routes_registrations.py
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from core.container import ServiceContainer
from core.response import ok
from models.schemas import RegisterRequest, UpdateRegistrationRequest

router = APIRouter()


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def _check_locations(container: ServiceContainer, locations: List[str]) -> None:
    unknown = sorted({loc for loc in locations if loc not in container.locations})
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unsupported locations: {', '.join(unknown)}")


@router.post("/registrations", status_code=201)
async def register(payload: RegisterRequest, container: ServiceContainer = Depends(get_container)):
    """
    Register a browser push subscription for one or more locations.

    - 201 Created: returns {id, locations}; the push capability is never echoed.
    - 400: unknown location keys.
    - 422: malformed body.
    """
    _check_locations(container, payload.locations)
    sub = await container.registry.register(payload.subscription.to_capability(), payload.locations)
    return ok(sub.model_dump(mode="json"))


@router.patch("/registrations/{registration_id}")
async def update_registration(
    registration_id: UUID,
    payload: UpdateRegistrationRequest,
    container: ServiceContainer = Depends(get_container),
):
    """
    Add/remove locations and optionally replace the push capability.

    - 200 OK: the updated {id, locations}; an empty list means the
      registration was removed because no locations were left.
    - 404: unknown registration id.
    """
    _check_locations(container, payload.locations)
    push = payload.subscription.to_capability() if payload.subscription is not None else None
    sub = await container.registry.update(
        registration_id,
        push=push,
        add_locations=payload.locations,
        remove_locations=payload.remove_locations,
    )
    return ok(sub.model_dump(mode="json"))


@router.delete("/registrations/{registration_id}", status_code=204)
async def delete_registration(registration_id: UUID, container: ServiceContainer = Depends(get_container)):
    """204 No Content on success, 404 for an unknown id."""
    await container.registry.remove(registration_id)
    return Response(status_code=204)
