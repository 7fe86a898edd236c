from datetime import timedelta

from bson import ObjectId

from database import now_utc


def _seed(make_package, make_item, make_bill, client, auth_headers):
    haircut = make_package("Haircut", menPricing={"basic": 200})
    facial = make_package("Facial", womenPricing={"advance": 900})
    shampoo = make_item("Shampoo", quantity=5, price=100, paymentStatus="Paid")
    make_item("Serum", quantity=2, price=250)

    make_bill(haircut, productSales=[{"inventoryId": shampoo, "quantitySold": 2}], expenditures=[{"name": "Tea", "price": 30}])
    client.post("/api/bills", json={
        "services": [{"packageId": facial, "gender": "women", "serviceLevel": "advance"}],
        "attendantBy": "Ravi",
        "paymentMethod": "UPI",
    }, headers=auth_headers)


def test_sales_report_all(client, auth_headers, make_package, make_item, make_bill):
    _seed(make_package, make_item, make_bill, client, auth_headers)

    report = client.get("/api/reports/sales", params={"period": "all"}, headers=auth_headers).json()

    assert report["period"] == "all"
    assert report["totalSales"] == 1330
    assert report["totalBills"] == 2
    assert report["dateRange"] is None
    by_type = {row["name"]: row for row in report["packageTypeDistribution"]}
    assert by_type["Advance"]["value"] == 900
    assert by_type["Basic"]["value"] == 200
    top = report["topPackagesDistribution"]
    assert top[0]["name"] == "Facial"
    assert top[0]["count"] == 1
    assert report["salesTrend"] == [{"date": now_utc().date().isoformat(), "sales": 1330}]


def test_sales_report_defaults_to_yesterday(client, auth_headers, mongo, make_package, make_bill):
    bill_id = make_bill(make_package()).json()["billId"]
    make_bill(make_package("Shave"))
    mongo.bills.update_one({"_id": ObjectId(bill_id)}, {"$set": {"createdAt": now_utc() - timedelta(days=1)}})

    report = client.get("/api/reports/sales", headers=auth_headers).json()

    assert report["period"] == "yesterday"
    assert report["totalBills"] == 1
    assert report["totalSales"] == 200


def test_expense_report_summary(client, auth_headers, make_package, make_item, make_bill):
    _seed(make_package, make_item, make_bill, client, auth_headers)

    report = client.get("/api/reports/expenses", headers=auth_headers).json()

    summary = report["summary"]
    assert report["period"] == "all"
    assert summary["totalItems"] == 2
    assert summary["totalQuantity"] == 5
    assert summary["totalAmount"] == 800
    assert summary["paidAmount"] == 300
    assert summary["unpaidAmount"] == 500
    assert len(summary["items"]) == 2
    assert summary["productSales"]["totalProductsSold"] == 2
    assert summary["productSales"]["totalProductSalesAmount"] == 200
    assert summary["productSales"]["items"][0]["productName"] == "Shampoo"
    assert summary["expenditures"]["totalExpenditures"] == 30
    assert summary["expenditures"]["totalExpenditureItems"] == 1
    today = now_utc().date().isoformat()
    assert report["dailyBreakdown"] == [{"_id": today, "dailyTotal": 800, "dailyItems": 2}]
    assert report["dailySalesBreakdown"][0]["dailySalesTotal"] == 200


def test_reports_are_owner_scoped(client, auth_headers, other_headers, make_package, make_item, make_bill):
    _seed(make_package, make_item, make_bill, client, auth_headers)

    sales = client.get("/api/reports/sales", params={"period": "all"}, headers=other_headers).json()
    expenses = client.get("/api/reports/expenses", headers=other_headers).json()

    assert sales["totalSales"] == 0
    assert sales["totalBills"] == 0
    assert expenses["summary"]["totalAmount"] == 0
    assert expenses["summary"]["productSales"]["items"] == []


def test_unsupported_period(client, auth_headers):
    resp = client.get("/api/reports/sales", params={"period": "fortnight"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Unsupported period")

    resp = client.get("/api/reports/expenses", params={"period": "custom", "endDate": "2024-01-31"}, headers=auth_headers)
    assert resp.status_code == 400


def test_dashboard(client, auth_headers, make_package, make_item, make_bill):
    _seed(make_package, make_item, make_bill, client, auth_headers)

    data = client.get("/api/dashboard/analytics", headers=auth_headers).json()

    assert data["todaysTotalSales"] == 1330
    assert data["todaysBillsCount"] == 2
    assert data["todaysExpenditures"] == 30
    assert data["highestBillToday"]["totalAmount"] == 900
    assert data["todaysServicesCount"] == 2
    assert data["mostUsedPackage"]["count"] == 1
    assert data["totalPackages"] == 2
    assert data["totalBills"] == 2
    assert data["totalInventoryItems"] == 2
    assert data["inventoryStats"] == {"totalValue": 800, "paidValue": 300, "unpaidValue": 500}
    assert len(data["recentBills"]) == 2
    assert data["thisMonthsTotalSales"] == 1330
    assert data["thisMonthsInventoryExpenses"] == 800
    assert data["thisMonthsProfit"] == 1330 - 800 - 30
    assert data["thisWeeksProfit"] == data["thisMonthsProfit"]


def test_dashboard_empty(client, auth_headers):
    data = client.get("/api/dashboard/analytics", headers=auth_headers).json()
    assert data["todaysTotalSales"] == 0
    assert data["highestBillToday"] is None
    assert data["mostUsedPackage"] is None
    assert data["recentBills"] == []
