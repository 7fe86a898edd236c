from typing import Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException

from auth import AuthUser, get_current_user
from database import collection, create_document, get_documents, now_utc, owner_filter, parse_object_id, serialize
from logger import get_logger
from schemas import Package

logger = get_logger("packages")

router = APIRouter()

NOT_FOUND = "Package not found"
# Fallback order when a selection names no gender or service level.
TIER_ORDER = (("men", "basic"), ("men", "advance"), ("women", "basic"), ("women", "advance"))


def _tier(package: dict, gender: str) -> dict:
    return package.get(f"{gender}Pricing") or {}


def is_flat_priced(package: dict) -> bool:
    return bool(package.get("price"))


def resolve_price(package: dict, gender: Optional[str] = None, service_level: Optional[str] = None) -> Tuple[float, str, Optional[str], Optional[str]]:
    """Resolve a package to one billable (price, packageType, gender, serviceLevel)."""
    if is_flat_priced(package):
        return float(package["price"]), package.get("type") or "Basic", gender, service_level

    candidates = [
        (g, lvl) for g, lvl in TIER_ORDER
        if (gender is None or g == gender) and (service_level is None or lvl == service_level)
    ]
    for g, lvl in candidates:
        price = _tier(package, g).get(lvl)
        if price:
            return float(price), lvl.capitalize(), g, lvl

    label = " ".join(part for part in (gender, service_level) if part) or "any tier"
    raise HTTPException(status_code=400, detail=f"No price available for {package.get('name', 'package')} ({label})")


def _validate(payload: Package) -> dict:
    if not payload.name or not payload.name.strip() or not payload.description or not payload.description.strip():
        raise HTTPException(status_code=400, detail="Package name and description are required")

    men = payload.menPricing.model_dump(exclude_none=True) if payload.menPricing else {}
    women = payload.womenPricing.model_dump(exclude_none=True) if payload.womenPricing else {}
    if payload.price is None and not men and not women:
        raise HTTPException(status_code=400, detail="Please provide pricing for at least one gender")
    if payload.price is not None and payload.type is None:
        raise HTTPException(status_code=400, detail="Type must be Basic or Premium")

    return {
        "name": payload.name.strip(),
        "description": payload.description.strip(),
        "price": payload.price,
        "type": payload.type,
        "menPricing": men or None,
        "womenPricing": women or None,
    }


# ----- Package Endpoints -----

@router.get("/api/packages")
def list_packages(user: AuthUser = Depends(get_current_user)):
    return {"packages": serialize(get_documents("packages", user.user_id))}


@router.post("/api/packages", status_code=201)
def create_package(payload: Package, user: AuthUser = Depends(get_current_user)):
    package_id = create_document("packages", _validate(payload), owner_id=user.user_id)
    logger.info("[PACKAGES] Created %s for owner %s", package_id, user.user_id)
    return {"message": "Package created successfully", "packageId": str(package_id)}


@router.put("/api/packages/{package_id}")
def update_package(package_id: str, payload: Package, user: AuthUser = Depends(get_current_user)):
    _id = parse_object_id(package_id, NOT_FOUND)
    data = _validate(payload)
    res = collection("packages").update_one(
        owner_filter(user.user_id, _id=_id),
        {"$set": {**data, "updatedAt": now_utc()}},
    )
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return {"message": "Package updated successfully"}


@router.delete("/api/packages/{package_id}")
def delete_package(package_id: str, user: AuthUser = Depends(get_current_user)):
    _id = parse_object_id(package_id, NOT_FOUND)
    res = collection("packages").delete_one(owner_filter(user.user_id, _id=_id))
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return {"message": "Package deleted successfully"}
