"""
Read-only reporting over bills and inventory.

All sums run as MongoDB aggregation pipelines scoped to the caller. Period
selectors resolve to a [start, end] range in UTC: "yesterday" is the previous
calendar day, while lastWeek/lastMonth/lastYear are rolling windows that end
at the moment of the query.
"""
import calendar
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pymongo import DESCENDING

from auth import AuthUser, get_current_user
from database import collection, now_utc, owner_filter, serialize, to_naive_utc

router = APIRouter()

PERIODS = ("yesterday", "lastWeek", "lastMonth", "lastYear", "custom", "all")
TOP_PACKAGES = 8
RECENT_BILLS = 15

DateRange = Optional[Tuple[datetime, datetime]]


# ----- Period resolution -----

def shift_months(value: datetime, months: int) -> datetime:
    years, month_index = divmod(value.month - 1 + months, 12)
    year = value.year + years
    month = month_index + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _parse_bound(value: Optional[str], field: str, end_of_day: bool) -> datetime:
    if not value:
        raise HTTPException(status_code=400, detail=f"{field} is required for a custom period")
    try:
        if len(value) == 10:
            day = date.fromisoformat(value)
            return datetime.combine(day, time.max if end_of_day else time.min)
        return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field}: invalid date {value!r}")


def resolve_period(period: str, start: Optional[str] = None, end: Optional[str] = None, now: Optional[datetime] = None) -> DateRange:
    """Return the inclusive (start, end) range for a period, or None for "all"."""
    now = now or now_utc()
    if period == "all":
        return None
    if period == "yesterday":
        day = now.date() - timedelta(days=1)
        return datetime.combine(day, time.min), datetime.combine(day, time.max)
    if period == "lastWeek":
        return now - timedelta(days=7), now
    if period == "lastMonth":
        return shift_months(now, -1), now
    if period == "lastYear":
        return shift_months(now, -12), now
    if period == "custom":
        range_start = _parse_bound(start, "startDate", end_of_day=False)
        range_end = _parse_bound(end, "endDate", end_of_day=True)
        if range_end < range_start:
            raise HTTPException(status_code=400, detail="endDate must not be before startDate")
        return range_start, range_end
    raise HTTPException(status_code=400, detail=f"Unsupported period: {period}. Use one of: {', '.join(PERIODS)}")


def _match(owner_id: ObjectId, field: str, date_range: DateRange) -> dict:
    match = owner_filter(owner_id)
    if date_range:
        match[field] = {"$gte": date_range[0], "$lte": date_range[1]}
    return match


# ----- Aggregation helpers -----

def _day_key(field: str) -> dict:
    return {"y": {"$year": field}, "m": {"$month": field}, "d": {"$dayOfMonth": field}}


def _day_label(key: dict) -> str:
    return f"{key['y']:04d}-{key['m']:02d}-{key['d']:02d}"


def _aggregate(name: str, pipeline: List[dict]) -> List[dict]:
    return list(collection(name).aggregate(pipeline))


def _first(rows: List[dict], defaults: Dict[str, float]) -> dict:
    row = dict(rows[0]) if rows else dict(defaults)
    row.pop("_id", None)
    return row


def _daily(name: str, match: dict, date_field: str, fields: Dict[str, dict], unwind: Optional[str] = None) -> List[dict]:
    pipeline = [{"$match": match}]
    if unwind:
        pipeline.append({"$unwind": f"${unwind}"})
    pipeline.append({"$group": {"_id": _day_key(f"${date_field}"), **fields}})
    rows = [{**r, "_id": _day_label(r["_id"])} for r in _aggregate(name, pipeline)]
    return sorted(rows, key=lambda r: r["_id"])


def _percentage(part: float, whole: float) -> str:
    return f"{part / whole * 100:.1f}" if whole > 0 else "0"


def _date_range_payload(date_range: DateRange) -> Optional[dict]:
    if not date_range:
        return None
    return {"start": date_range[0].isoformat(), "end": date_range[1].isoformat()}


# ----- Sales report -----

def sales_report(owner_id: ObjectId, period: str, date_range: DateRange) -> dict:
    match = _match(owner_id, "createdAt", date_range)

    totals = _first(
        _aggregate("bills", [{"$match": match}, {"$group": {"_id": None, "totalSales": {"$sum": "$totalAmount"}, "totalBills": {"$sum": 1}}}]),
        {"totalSales": 0, "totalBills": 0},
    )
    total_sales = totals["totalSales"]

    by_type = _aggregate("bills", [
        {"$match": match},
        {"$unwind": "$items"},
        {"$group": {"_id": "$items.packageType", "revenue": {"$sum": "$items.packagePrice"}}},
    ])
    by_package = _aggregate("bills", [
        {"$match": match},
        {"$unwind": "$items"},
        {"$group": {"_id": "$items.packageName", "revenue": {"$sum": "$items.packagePrice"}, "count": {"$sum": 1}}},
        {"$sort": {"revenue": DESCENDING}},
        {"$limit": TOP_PACKAGES},
    ])
    trend = _daily("bills", match, "createdAt", {"sales": {"$sum": "$totalAmount"}})

    return {
        "period": period,
        "totalSales": total_sales,
        "totalBills": totals["totalBills"],
        "packageTypeDistribution": [
            {"name": row["_id"], "value": row["revenue"], "percentage": _percentage(row["revenue"], total_sales)}
            for row in by_type
        ],
        "topPackagesDistribution": [
            {
                "name": row["_id"] if len(row["_id"]) <= 20 else row["_id"][:20] + "...",
                "value": row["revenue"],
                "count": row["count"],
                "percentage": _percentage(row["revenue"], total_sales),
            }
            for row in by_package
        ],
        "salesTrend": [{"date": row["_id"], "sales": row["sales"]} for row in trend],
        "dateRange": _date_range_payload(date_range),
    }


# ----- Expense report -----

def _unwound_lines(match: dict, field: str) -> List[dict]:
    rows = _aggregate("bills", [{"$match": match}, {"$unwind": f"${field}"}])
    return [
        {**row[field], "billId": row["_id"], "clientName": row.get("clientName"), "billedAt": row["createdAt"]}
        for row in rows
    ]


def expense_report(owner_id: ObjectId, period: str, date_range: DateRange) -> dict:
    inventory_match = _match(owner_id, "dateEntered", date_range)
    bill_match = _match(owner_id, "createdAt", date_range)

    purchases = _first(
        _aggregate("inventory", [
            {"$match": inventory_match},
            {"$group": {
                "_id": None,
                "totalItems": {"$sum": 1},
                "totalQuantity": {"$sum": "$quantity"},
                "totalAmount": {"$sum": "$total"},
                "paidAmount": {"$sum": {"$cond": [{"$eq": ["$paymentStatus", "Paid"]}, "$total", 0]}},
                "unpaidAmount": {"$sum": {"$cond": [{"$eq": ["$paymentStatus", "Unpaid"]}, "$total", 0]}},
            }},
        ]),
        {"totalItems": 0, "totalQuantity": 0, "totalAmount": 0, "paidAmount": 0, "unpaidAmount": 0},
    )
    purchases["items"] = list(collection("inventory").find(inventory_match).sort("dateEntered", DESCENDING))

    sold = _first(
        _aggregate("bills", [
            {"$match": bill_match},
            {"$unwind": "$productSales"},
            {"$group": {
                "_id": None,
                "totalProductsSold": {"$sum": "$productSales.quantitySold"},
                "totalProductSalesAmount": {"$sum": "$productSales.totalPrice"},
            }},
        ]),
        {"totalProductsSold": 0, "totalProductSalesAmount": 0},
    )
    sold["items"] = _unwound_lines(bill_match, "productSales")

    spent = _first(
        _aggregate("bills", [
            {"$match": bill_match},
            {"$unwind": "$expenditures"},
            {"$group": {
                "_id": None,
                "totalExpenditures": {"$sum": "$expenditures.price"},
                "totalExpenditureItems": {"$sum": 1},
            }},
        ]),
        {"totalExpenditures": 0, "totalExpenditureItems": 0},
    )
    spent["items"] = _unwound_lines(bill_match, "expenditures")

    return serialize({
        "summary": {**purchases, "productSales": sold, "expenditures": spent},
        "dailyBreakdown": _daily("inventory", inventory_match, "dateEntered", {
            "dailyTotal": {"$sum": "$total"},
            "dailyItems": {"$sum": 1},
        }),
        "dailySalesBreakdown": _daily("bills", bill_match, "createdAt", {
            "dailySalesTotal": {"$sum": "$productSales.totalPrice"},
            "dailySalesItems": {"$sum": "$productSales.quantitySold"},
        }, unwind="productSales"),
        "dailyExpendituresBreakdown": _daily("bills", bill_match, "createdAt", {
            "dailyExpendituresTotal": {"$sum": "$expenditures.price"},
            "dailyExpendituresItems": {"$sum": 1},
        }, unwind="expenditures"),
        "period": period,
        "dateRange": _date_range_payload(date_range),
    })


# ----- Dashboard -----

def _bill_totals(owner_id: ObjectId, since: datetime, until: Optional[datetime] = None) -> Dict[str, float]:
    created = {"$gte": since}
    if until:
        created["$lte"] = until
    match = owner_filter(owner_id, createdAt=created)
    sales = _first(
        _aggregate("bills", [{"$match": match}, {"$group": {"_id": None, "sales": {"$sum": "$totalAmount"}, "count": {"$sum": 1}}}]),
        {"sales": 0, "count": 0},
    )
    spent = _first(
        _aggregate("bills", [{"$match": match}, {"$unwind": "$expenditures"}, {"$group": {"_id": None, "total": {"$sum": "$expenditures.price"}}}]),
        {"total": 0},
    )
    return {"sales": sales["sales"], "count": sales["count"], "expenditures": spent["total"]}


def _inventory_spend(owner_id: ObjectId, since: datetime) -> float:
    row = _first(
        _aggregate("inventory", [
            {"$match": owner_filter(owner_id, dateEntered={"$gte": since})},
            {"$group": {"_id": None, "total": {"$sum": "$total"}}},
        ]),
        {"total": 0},
    )
    return row["total"]


def dashboard_analytics(owner_id: ObjectId, now: Optional[datetime] = None) -> dict:
    now = now or now_utc()
    start_of_day = datetime.combine(now.date(), time.min)
    end_of_day = datetime.combine(now.date(), time.max)
    start_of_week = start_of_day - timedelta(days=(now.weekday() + 1) % 7)
    start_of_month = start_of_day.replace(day=1)
    today_match = owner_filter(owner_id, createdAt={"$gte": start_of_day, "$lte": end_of_day})

    bills = collection("bills")
    today = _bill_totals(owner_id, start_of_day, end_of_day)
    week = _bill_totals(owner_id, start_of_week)
    month = _bill_totals(owner_id, start_of_month)
    week_inventory = _inventory_spend(owner_id, start_of_week)
    month_inventory = _inventory_spend(owner_id, start_of_month)

    highest = next(iter(bills.find(today_match).sort("totalAmount", DESCENDING).limit(1)), None)
    package_counts = _aggregate("bills", [
        {"$match": today_match},
        {"$unwind": "$items"},
        {"$group": {"_id": "$items.packageName", "count": {"$sum": 1}}},
        {"$sort": {"count": DESCENDING}},
    ])
    inventory_stats = _first(
        _aggregate("inventory", [
            {"$match": owner_filter(owner_id)},
            {"$group": {
                "_id": None,
                "totalValue": {"$sum": "$total"},
                "paidValue": {"$sum": {"$cond": [{"$eq": ["$paymentStatus", "Paid"]}, "$total", 0]}},
                "unpaidValue": {"$sum": {"$cond": [{"$eq": ["$paymentStatus", "Unpaid"]}, "$total", 0]}},
            }},
        ]),
        {"totalValue": 0, "paidValue": 0, "unpaidValue": 0},
    )

    return serialize({
        "todaysTotalSales": today["sales"],
        "todaysBillsCount": today["count"],
        "todaysExpenditures": today["expenditures"],
        "highestBillToday": highest if highest and highest["totalAmount"] > 0 else None,
        "todaysServicesCount": sum(row["count"] for row in package_counts),
        "mostUsedPackage": {"name": package_counts[0]["_id"], "count": package_counts[0]["count"]} if package_counts else None,
        "totalPackages": collection("packages").count_documents(owner_filter(owner_id)),
        "totalBills": bills.count_documents(owner_filter(owner_id)),
        "totalInventoryItems": collection("inventory").count_documents(owner_filter(owner_id)),
        "inventoryStats": inventory_stats,
        "recentBills": list(bills.find(today_match).sort("createdAt", DESCENDING).limit(RECENT_BILLS)),
        "thisWeeksTotalSales": week["sales"],
        "thisWeeksInventoryExpenses": week_inventory,
        "thisWeeksExpenditures": week["expenditures"],
        "thisWeeksProfit": week["sales"] - week_inventory - week["expenditures"],
        "thisMonthsTotalSales": month["sales"],
        "thisMonthsInventoryExpenses": month_inventory,
        "thisMonthsExpenditures": month["expenditures"],
        "thisMonthsProfit": month["sales"] - month_inventory - month["expenditures"],
    })


# ----- Report Endpoints -----

@router.get("/api/reports/sales")
def get_sales_report(period: str = "yesterday", startDate: Optional[str] = None, endDate: Optional[str] = None, user: AuthUser = Depends(get_current_user)):
    return sales_report(user.user_id, period, resolve_period(period, startDate, endDate))


@router.get("/api/reports/expenses")
def get_expense_report(period: str = "all", startDate: Optional[str] = None, endDate: Optional[str] = None, user: AuthUser = Depends(get_current_user)):
    return expense_report(user.user_id, period, resolve_period(period, startDate, endDate))


@router.get("/api/dashboard/analytics")
def get_dashboard_analytics(user: AuthUser = Depends(get_current_user)):
    return dashboard_analytics(user.user_id)
