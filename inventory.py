from typing import Iterable, List

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, HTTPException
from pymongo import ReturnDocument

from auth import AuthUser, get_current_user
from database import collection, create_document, get_documents, now_utc, owner_filter, parse_object_id, serialize, to_naive_utc
from logger import get_logger
from schemas import InventoryItem, ProductSaleRequest

logger = get_logger("inventory")

router = APIRouter()

NOT_FOUND = "Inventory item not found"
REQUIRED_MESSAGE = "Item Name, Brand Name, Category, Quantity, Stock In, and Unit Price are required"
POSITIVE_MESSAGE = "Quantity, Stock In, and Unit Price must be positive numbers"


def _fmt_qty(value) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _validate(payload: InventoryItem) -> dict:
    required = (payload.name, payload.brandName, payload.category, payload.quantity, payload.stockIn, payload.pricePerUnit)
    if any(v is None or (isinstance(v, str) and not v.strip()) for v in required):
        raise HTTPException(status_code=400, detail=REQUIRED_MESSAGE)
    if payload.quantity <= 0 or payload.stockIn <= 0 or payload.pricePerUnit <= 0:
        raise HTTPException(status_code=400, detail=POSITIVE_MESSAGE)

    return {
        "name": payload.name.strip(),
        "brandName": payload.brandName.strip(),
        "category": payload.category.strip(),
        "quantity": payload.quantity,
        "shadesCode": payload.shadesCode or None,
        "stockIn": payload.stockIn,
        "pricePerUnit": float(payload.pricePerUnit),
        "expiryDate": to_naive_utc(payload.expiryDate),
        "total": payload.quantity * float(payload.pricePerUnit),
        "paymentStatus": payload.paymentStatus,
    }


# ----- Stock ledger -----

def _revalue(owner_id: ObjectId, item: dict) -> None:
    """Set `total` from the quantity and price the caller just observed.

    The filter pins both values, so a write that lost a race to a newer
    quantity change matches nothing; the newer writer revalues instead.
    """
    collection("inventory").update_one(
        owner_filter(owner_id, _id=item["_id"], quantity=item["quantity"], pricePerUnit=item["pricePerUnit"]),
        {"$set": {"total": item["quantity"] * float(item["pricePerUnit"])}},
    )


def debit_stock(owner_id: ObjectId, inventory_id: str, quantity: int) -> dict:
    """Decrement stock only if enough is on hand. Returns the item after the debit."""
    try:
        _id = ObjectId(inventory_id)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Product not found: {inventory_id}")

    after = collection("inventory").find_one_and_update(
        owner_filter(owner_id, _id=_id, quantity={"$gte": quantity}),
        {"$inc": {"quantity": -quantity}, "$set": {"updatedAt": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if after is not None:
        _revalue(owner_id, after)
        return after

    item = collection("inventory").find_one(owner_filter(owner_id, _id=_id))
    if not item:
        raise HTTPException(status_code=400, detail=f"Product not found: {inventory_id}")
    logger.info("[INVENTORY] Rejected debit of %s from %s (available %s)", quantity, _id, item.get("quantity"))
    raise HTTPException(
        status_code=400,
        detail=f"Insufficient stock for {item['name']}. Available: {_fmt_qty(item.get('quantity', 0))}, Requested: {quantity}",
    )


def restock(owner_id: ObjectId, inventory_id: ObjectId, quantity: int) -> None:
    after = collection("inventory").find_one_and_update(
        owner_filter(owner_id, _id=inventory_id),
        {"$inc": {"quantity": quantity}, "$set": {"updatedAt": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if after is not None:
        _revalue(owner_id, after)
    logger.warning("[INVENTORY] Restocked %s units of %s", quantity, inventory_id)


def restock_sales(owner_id: ObjectId, sales: Iterable[dict]) -> None:
    for sale in sales:
        restock(owner_id, sale["inventoryId"], sale["quantitySold"])


def debit_many(owner_id: ObjectId, requests: List[ProductSaleRequest]) -> List[dict]:
    """Debit every requested line or none of them.

    Returns the product-sale snapshots for the bill. If any line fails, lines
    already debited in this call are put back before the error propagates.
    """
    sales: List[dict] = []
    try:
        for req in requests:
            item = debit_stock(owner_id, req.inventoryId, req.quantitySold)
            price = float(item["pricePerUnit"])
            sales.append({
                "inventoryId": item["_id"],
                "productName": item["name"],
                "brandName": item.get("brandName", ""),
                "quantitySold": req.quantitySold,
                "pricePerUnit": price,
                "totalPrice": req.quantitySold * price,
            })
    except Exception:
        restock_sales(owner_id, sales)
        raise
    return sales


# ----- Inventory Endpoints -----

@router.get("/api/inventory")
def list_inventory(user: AuthUser = Depends(get_current_user)):
    return {"inventory": serialize(get_documents("inventory", user.user_id))}


@router.post("/api/inventory", status_code=201)
def create_item(payload: InventoryItem, user: AuthUser = Depends(get_current_user)):
    data = _validate(payload)
    now = now_utc()
    data.update({"dateEntered": now, "createdAt": now, "updatedAt": now})
    item_id = create_document("inventory", data, owner_id=user.user_id)
    logger.info("[INVENTORY] Added %s (%s units) for owner %s", data["name"], data["quantity"], user.user_id)
    return {"message": "Inventory item added successfully", "id": str(item_id)}


@router.put("/api/inventory/{item_id}")
def update_item(item_id: str, payload: InventoryItem, user: AuthUser = Depends(get_current_user)):
    _id = parse_object_id(item_id, NOT_FOUND)
    data = _validate(payload)
    res = collection("inventory").update_one(
        owner_filter(user.user_id, _id=_id),
        {"$set": {**data, "updatedAt": now_utc()}},
    )
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return {"message": "Inventory item updated successfully"}


@router.delete("/api/inventory/{item_id}")
def delete_item(item_id: str, user: AuthUser = Depends(get_current_user)):
    _id = parse_object_id(item_id, NOT_FOUND)
    res = collection("inventory").delete_one(owner_filter(user.user_id, _id=_id))
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return {"message": "Inventory item deleted successfully"}
