from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict

from localfy.models.business import Business, GeoPoint
from localfy.routers.dependencies import get_store
from localfy.services.business_store import BusinessStore
from localfy.services.geo import distance_to_business

router = APIRouter()


class SelectCategoryRequest(BaseModel):
    category: str | None = None

    model_config = ConfigDict(extra="forbid")


class ObserveBusinessesRequest(BaseModel):
    ids: list[str]

    model_config = ConfigDict(extra="forbid")


def _serialize_business(business: Business) -> dict[str, Any]:
    return business.model_dump(mode="json", by_alias=True)


def _serialize_with_distance(business: Business, origin: GeoPoint | None) -> dict[str, Any]:
    payload = _serialize_business(business)
    if origin is not None:
        payload["distance"] = distance_to_business(origin, business)
    return payload


def _store_payload(store: BusinessStore, origin: GeoPoint | None = None) -> dict[str, Any]:
    items = store.filtered_businesses
    return {
        "items": [_serialize_with_distance(item, origin) for item in items],
        "count": len(items),
        "total_loaded": len(store.businesses),
        "categories": store.categories,
        "selected_category": store.selected_category,
        "status": store.status.value,
        "ready": store.ready,
        "error": store.error,
        "has_more": store.has_more,
    }


@router.get("/businesses", tags=["Business"])
async def list_businesses(
    lat: float | None = Query(default=None, ge=-90, le=90),
    lng: float | None = Query(default=None, ge=-180, le=180),
    store: BusinessStore = Depends(get_store),
) -> dict:
    if (lat is None) != (lng is None):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="lat and lng must be provided together.")
    origin = GeoPoint(latitude=lat, longitude=lng) if lat is not None else None
    return _store_payload(store, origin)


@router.post("/businesses/refresh", tags=["Business"])
async def refresh_businesses(
    force: bool = Query(default=False),
    store: BusinessStore = Depends(get_store),
) -> dict:
    await store.refresh(force=force, token=store.new_token())
    return _store_payload(store)


@router.post("/businesses/load-more", tags=["Business"])
async def load_more_businesses(store: BusinessStore = Depends(get_store)) -> dict:
    await store.load_more(token=store.new_token())
    return _store_payload(store)


@router.put("/businesses/category", tags=["Business"])
async def select_category(
    payload: SelectCategoryRequest,
    store: BusinessStore = Depends(get_store),
) -> dict:
    store.set_selected_category(payload.category)
    return _store_payload(store)


@router.post("/businesses/pagination/reset", tags=["Business"])
async def reset_pagination(store: BusinessStore = Depends(get_store)) -> dict:
    store.reset_pagination()
    return _store_payload(store)


@router.put("/businesses/observed", tags=["Business"])
async def observe_businesses(
    payload: ObserveBusinessesRequest,
    store: BusinessStore = Depends(get_store),
) -> dict:
    store.observe(payload.ids)
    return {"observed": sorted(store.observed_ids)}


@router.get("/businesses/{business_id}", tags=["Business"])
async def get_business(business_id: str, store: BusinessStore = Depends(get_store)) -> dict:
    business = await store.get_business_by_id(business_id)
    if business is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Business '{business_id}' not found.")
    return {"item": _serialize_business(business), "favorite": store.is_favorite(business_id)}


@router.patch("/businesses/{business_id}", tags=["Business"])
async def update_business(
    business_id: str,
    fields: dict[str, Any] = Body(...),
    store: BusinessStore = Depends(get_store),
) -> dict:
    try:
        saved = await store.update_business(business_id, fields)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    if not saved:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Business '{business_id}' could not be saved. Local changes are kept until the next refresh.",
        )

    business = await store.get_business_by_id(business_id)
    return {
        "business_id": business_id,
        "saved": saved,
        "item": _serialize_business(business) if business is not None else None,
    }


@router.post("/businesses/{business_id}/favorite", tags=["Favorites"])
async def toggle_favorite(business_id: str, store: BusinessStore = Depends(get_store)) -> dict:
    return {"business_id": business_id, "favorite": store.toggle_favorite(business_id)}


@router.get("/favorites", tags=["Favorites"])
async def list_favorites(store: BusinessStore = Depends(get_store)) -> dict:
    return {
        "favorites": store.favorites,
        "items": [_serialize_business(item) for item in store.favorite_businesses()],
    }


@router.get("/owners/{owner_id}/businesses", tags=["Business"])
async def list_owned_businesses(owner_id: str, store: BusinessStore = Depends(get_store)) -> dict:
    items = await store.owned_businesses(owner_id)
    return {
        "owner_id": owner_id,
        "items": [_serialize_business(item) for item in items],
        "count": len(items),
    }
