from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from auth import AuthUser, get_current_user
from database import collection, create_document, get_documents, now_utc, owner_filter, parse_object_id, serialize, to_naive_utc
from logger import get_logger
from schemas import DailyExpense

logger = get_logger("expenses")

router = APIRouter()

NOT_FOUND = "Expense not found"


def day_bounds(day: date):
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


# ----- Daily Expense Endpoints -----

@router.post("/api/daily-expenses", status_code=201)
def add_daily_expense(payload: DailyExpense, user: AuthUser = Depends(get_current_user)):
    if not payload.itemName or not payload.itemName.strip() or not payload.price:
        raise HTTPException(status_code=400, detail="Item name and price are required")
    if payload.price < 0:
        raise HTTPException(status_code=400, detail="price: must be a positive number")

    expense = {
        "itemName": payload.itemName.strip(),
        "price": float(payload.price),
        "date": to_naive_utc(payload.date) or now_utc(),
    }
    expense_id = create_document("dailyExpenses", expense, owner_id=user.user_id)
    logger.info("[EXPENSES] Logged %s (%s) for owner %s", expense["itemName"], expense["price"], user.user_id)
    return {"success": True, "expenseId": str(expense_id), "message": "Daily expense added successfully"}


@router.get("/api/daily-expenses")
def list_daily_expenses(day: Optional[date] = Query(None, alias="date"), user: AuthUser = Depends(get_current_user)):
    target = day or now_utc().date()
    start, end = day_bounds(target)
    expenses = get_documents("dailyExpenses", user.user_id, {"date": {"$gte": start, "$lte": end}})
    return {
        "expenses": serialize(expenses),
        "totalAmount": sum(e["price"] for e in expenses),
        "date": target.isoformat(),
        "count": len(expenses),
    }


@router.delete("/api/daily-expenses/{expense_id}")
def delete_daily_expense(expense_id: str, user: AuthUser = Depends(get_current_user)):
    _id = parse_object_id(expense_id, NOT_FOUND)
    res = collection("dailyExpenses").delete_one(owner_filter(user.user_id, _id=_id))
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return {"success": True, "message": "Expense deleted successfully"}
