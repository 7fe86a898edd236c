"""
Billing engine and bill endpoints.

A bill is composed from service selections (resolved against the owner's
packages), inventory-backed product sales and ad-hoc expenditures. Every line
is copied into the bill as a snapshot, so later edits to packages or inventory
never change a bill that already exists.

Creation debits inventory. The debit and the insert behave as one unit: if
the insert fails, the stock taken for this bill is put back. Bills can be
edited or deleted only within EDIT_WINDOW of `createdAt`.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pymongo import DESCENDING

from auth import AuthUser, get_current_user
from database import collection, create_document, now_utc, owner_filter, parse_object_id, serialize
from inventory import debit_many, restock_sales
from logger import get_logger
from notifications import dispatch_bill_side_effects
from packages import resolve_price
from schemas import Bill, BillRequestBase, CreateBillRequest, Expenditure, ProductSale, ServiceSelection, UpdateBillRequest

logger = get_logger("bills")

router = APIRouter()

EDIT_WINDOW = timedelta(minutes=15)
WALK_IN = "Walk-in Customer"
NOT_FOUND = "Bill not found"
LOCKED_EDIT = "This bill can no longer be edited. Bills can only be modified within 15 minutes of creation."
LOCKED_DELETE = "This bill can no longer be deleted. Bills can only be deleted within 15 minutes of creation."


# ----- Policy -----

def is_editable(bill: dict, now: Optional[datetime] = None) -> bool:
    now = now or now_utc()
    return now - bill["createdAt"] <= EDIT_WINDOW


# ----- Engine -----

def resolve_services(owner_id: ObjectId, selections: List[ServiceSelection]) -> List[dict]:
    if not selections:
        raise HTTPException(status_code=400, detail="At least one service must be selected")

    try:
        ids = {ObjectId(s.packageId) for s in selections}
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Some services not found")
    packages = {p["_id"]: p for p in collection("packages").find(owner_filter(owner_id, _id={"$in": list(ids)}))}
    if len(packages) != len(ids):
        raise HTTPException(status_code=400, detail="Some services not found")

    items = []
    for sel in selections:
        pkg = packages[ObjectId(sel.packageId)]
        price, package_type, gender, level = resolve_price(pkg, sel.gender, sel.serviceLevel)
        items.append({
            "packageId": pkg["_id"],
            "packageName": pkg["name"],
            "packagePrice": price,
            "packageType": package_type,
            "gender": gender,
            "serviceLevel": level,
        })
    return items


def snapshot_expenditures(expenditures: List[Expenditure]) -> List[dict]:
    lines = []
    for exp in expenditures:
        line = {"name": exp.name, "price": exp.price or 0.0, "complimentary": exp.price is None}
        if exp.description:
            line["description"] = exp.description
        lines.append(line)
    return lines


def compute_totals(items: List[dict], product_sales: List[dict], expenditures: List[dict]) -> Dict[str, float]:
    services_total = sum(item["packagePrice"] for item in items)
    product_sales_total = sum(sale["totalPrice"] for sale in product_sales)
    expenditures_total = sum(exp.get("price") or 0 for exp in expenditures)
    return {
        "servicesTotal": services_total,
        "productSalesTotal": product_sales_total,
        "expendituresTotal": expenditures_total,
        "totalAmount": services_total + product_sales_total + expenditures_total,
    }


def payment_method_for(payload: BillRequestBase, default: str = "CASH") -> str:
    if payload.paymentMethod:
        return payload.paymentMethod
    if payload.upiAmount > 0:
        return "UPI"
    if payload.cardAmount > 0:
        return "CARD"
    if payload.cashAmount > 0:
        return "CASH"
    return default


def allocate_payment(total: float, method: str) -> Dict[str, float]:
    return {
        "upiAmount": total if method == "UPI" else 0,
        "cardAmount": total if method == "CARD" else 0,
        "cashAmount": total if method == "CASH" else 0,
    }


def _client_fields(payload: BillRequestBase) -> dict:
    return {
        "clientName": (payload.clientName or "").strip() or WALK_IN,
        "customerMobile": (payload.customerMobile or "").strip() or None,
    }


def _bill_document(owner_id: ObjectId, payload: BillRequestBase, items: List[dict], product_sales: List[dict],
                   expenditures: List[dict], method: str, attendant: str, created_at: datetime, now: datetime) -> dict:
    totals = compute_totals(items, product_sales, expenditures)
    bill = Bill(
        userId=owner_id,
        items=items,
        totalAmount=totals["totalAmount"],
        **_client_fields(payload),
        **allocate_payment(totals["totalAmount"], method),
        paymentMethod=method,
        attendantBy=attendant,
        productSale=totals["productSalesTotal"],
        productSales=product_sales,
        expenditures=expenditures,
        createdAt=created_at,
        updatedAt=now,
    )
    return bill.model_dump()


def create_bill(owner_id: ObjectId, payload: CreateBillRequest, now: Optional[datetime] = None) -> dict:
    selections = payload.selections()
    if not selections:
        raise HTTPException(status_code=400, detail="At least one service must be selected")
    attendant = (payload.attendantBy or "").strip()
    if not attendant:
        raise HTTPException(status_code=400, detail="Attendant name is required")

    items = resolve_services(owner_id, selections)
    expenditures = snapshot_expenditures(payload.expenditures)
    product_sales = debit_many(owner_id, payload.productSales)

    method = payment_method_for(payload)
    now = now or now_utc()
    bill = _bill_document(owner_id, payload, items, product_sales, expenditures, method, attendant, now, now)

    try:
        bill["_id"] = create_document("bills", bill, owner_id=owner_id)
    except Exception:
        logger.exception("[BILLS] Insert failed for owner %s; restoring debited stock", owner_id)
        restock_sales(owner_id, product_sales)
        raise
    logger.info("[BILLS] Created %s for owner %s: total %s via %s", bill["_id"], owner_id, bill["totalAmount"], method)
    return bill


def _load_bill(owner_id: ObjectId, bill_id: str) -> dict:
    bill = collection("bills").find_one(owner_filter(owner_id, _id=parse_object_id(bill_id, NOT_FOUND)))
    if not bill:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return bill


def _window_filter(owner_id: ObjectId, bill_id: ObjectId, now: datetime) -> dict:
    return owner_filter(owner_id, _id=bill_id, createdAt={"$gte": now - EDIT_WINDOW})


def _resubmitted_sales(sales: List[ProductSale]) -> List[dict]:
    lines = []
    for sale in sales:
        try:
            inventory_id = ObjectId(sale.inventoryId) if sale.inventoryId else None
        except InvalidId:
            inventory_id = None
        lines.append({
            "inventoryId": inventory_id,
            "productName": sale.productName,
            "brandName": sale.brandName,
            "quantitySold": sale.quantitySold,
            "pricePerUnit": sale.pricePerUnit,
            "totalPrice": sale.quantitySold * sale.pricePerUnit,
        })
    return lines


def update_bill(owner_id: ObjectId, bill_id: str, payload: UpdateBillRequest, now: Optional[datetime] = None) -> dict:
    now = now or now_utc()
    existing = _load_bill(owner_id, bill_id)
    if not is_editable(existing, now):
        raise HTTPException(status_code=403, detail=LOCKED_EDIT)

    items = resolve_services(owner_id, payload.selections())
    # Stock is not re-checked here; the lines are trusted as submitted.
    product_sales = _resubmitted_sales(payload.productSales)
    expenditures = snapshot_expenditures(payload.expenditures)
    method = payment_method_for(payload, default=existing.get("paymentMethod", "CASH"))
    attendant = (payload.attendantBy or "").strip() or existing.get("attendantBy", "")

    changes = _bill_document(owner_id, payload, items, product_sales, expenditures, method, attendant, existing["createdAt"], now)
    del changes["userId"], changes["createdAt"]
    res = collection("bills").update_one(_window_filter(owner_id, existing["_id"], now), {"$set": changes})
    if res.matched_count == 0:
        raise HTTPException(status_code=403, detail=LOCKED_EDIT)
    logger.info("[BILLS] Updated %s for owner %s: total %s", existing["_id"], owner_id, changes["totalAmount"])
    return {**existing, **changes}


def delete_bill(owner_id: ObjectId, bill_id: str, now: Optional[datetime] = None) -> None:
    now = now or now_utc()
    existing = _load_bill(owner_id, bill_id)
    if not is_editable(existing, now):
        raise HTTPException(status_code=403, detail=LOCKED_DELETE)
    res = collection("bills").delete_one(_window_filter(owner_id, existing["_id"], now))
    if res.deleted_count == 0:
        raise HTTPException(status_code=403, detail=LOCKED_DELETE)
    logger.info("[BILLS] Deleted %s for owner %s", existing["_id"], owner_id)


def present(bill: dict, now: Optional[datetime] = None) -> dict:
    return {**serialize(bill), "isEditable": is_editable(bill, now)}


# ----- Bill Endpoints -----

@router.get("/api/bills")
def list_bills(user: AuthUser = Depends(get_current_user)):
    now = now_utc()
    bills = collection("bills").find(owner_filter(user.user_id)).sort("createdAt", DESCENDING)
    return {"bills": [present(b, now) for b in bills]}


@router.get("/api/bills/{bill_id}")
def get_bill(bill_id: str, user: AuthUser = Depends(get_current_user)):
    return {"bill": present(_load_bill(user.user_id, bill_id))}


@router.post("/api/bills", status_code=201)
def create_bill_endpoint(payload: CreateBillRequest, background: BackgroundTasks, user: AuthUser = Depends(get_current_user)):
    bill = create_bill(user.user_id, payload)
    background.add_task(dispatch_bill_side_effects, bill)
    return {"message": "Bill created successfully", "billId": str(bill["_id"]), "bill": present(bill)}


@router.put("/api/bills/{bill_id}")
def update_bill_endpoint(bill_id: str, payload: UpdateBillRequest, user: AuthUser = Depends(get_current_user)):
    bill = update_bill(user.user_id, bill_id, payload)
    return {"message": "Bill updated successfully", "bill": present(bill)}


@router.delete("/api/bills/{bill_id}")
def delete_bill_endpoint(bill_id: str, user: AuthUser = Depends(get_current_user)):
    delete_bill(user.user_id, bill_id)
    return {"message": "Bill deleted successfully"}
