from datetime import datetime, time, timezone
from decimal import Decimal

from support import FRIDAY, MONDAY, PAST_FRIDAY, SATURDAY


def test_availability_for_friday(client, catalog):
    booth = catalog.package(name="Booth")
    cake = catalog.extra(name="Cake")
    catalog.package(name="Retired", is_active=False)
    catalog.stock(booth, quantity=3)

    response = client.get("/availability", params={"date": FRIDAY.isoformat()})

    assert response.status_code == 200
    body = response.json()
    assert body["date"] == FRIDAY.isoformat()
    assert body["is_blackout"] is False
    items = {item["name"]: item for item in body["items"]}
    assert set(items) == {"Booth", "Cake"}
    assert items["Booth"]["is_available"] is True
    assert items["Booth"]["available_quantity"] == 3
    assert items["Booth"].get("message") is None
    assert items["Cake"]["is_available"] is False
    assert items["Cake"]["message"] == "No availability data"
    assert items["Cake"]["item_ref"] == cake.id


def test_blackout_makes_everything_unavailable(client, catalog):
    booth = catalog.package(name="Booth")
    prosecco = catalog.extra(name="Prosecco")
    catalog.stock(booth, quantity=10)
    catalog.stock(prosecco, quantity=10)
    catalog.blackout(FRIDAY, reason="Private hire")

    response = client.get("/availability", params={"date": FRIDAY.isoformat()})

    assert response.status_code == 200
    body = response.json()
    assert body["is_blackout"] is True
    assert body["blackout_reason"] == "Private hire"
    assert len(body["items"]) == 2
    assert all(item["is_available"] is False for item in body["items"])
    assert all(item["available_quantity"] == 0 for item in body["items"])


def test_sold_out_item_is_unavailable(client, catalog):
    booth = catalog.package(name="Booth")
    catalog.stock(booth, quantity=0, total=4)

    items = client.get("/availability", params={"date": FRIDAY.isoformat()}).json()["items"]

    assert items[0]["is_available"] is False
    assert items[0]["available_quantity"] == 0


def test_past_cutoff_marks_items_unavailable(client, clock, catalog):
    booth = catalog.package(name="Booth")
    catalog.stock(booth, quantity=3)
    clock.now = datetime(2030, 6, 7, 22, 30, tzinfo=timezone.utc)

    body = client.get("/availability", params={"date": FRIDAY.isoformat()}).json()

    assert body["is_past_cutoff"] is True
    assert body["items"][0]["is_available"] is False


def test_availability_rejects_monday(client):
    response = client.get("/availability", params={"date": MONDAY.isoformat()})

    assert response.status_code == 400
    assert response.json()["error"] == "UnsupportedDay"


def test_availability_rejects_past_date(client):
    response = client.get("/availability", params={"date": PAST_FRIDAY.isoformat()})

    assert response.status_code == 400
    assert response.json()["error"] == "PastDate"


def test_availability_requires_date(client):
    response = client.get("/availability")

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidDate"


# -----------------------------
# Bookable date calendar
# -----------------------------
def test_available_dates_lists_fridays_and_saturdays(client, catalog):
    catalog.cutoff_rule(SATURDAY.weekday(), time(22, 0))

    response = client.get(
        "/available-dates",
        params={"start_date": "2030-06-03", "end_date": "2030-06-16"},
    )

    assert response.status_code == 200
    dates = response.json()["dates"]
    assert [day["date"] for day in dates] == ["2030-06-07", "2030-06-08", "2030-06-14", "2030-06-15"]
    assert [day["day_of_week"] for day in dates[:2]] == ["Friday", "Saturday"]
    assert dates[0]["cutoff_time"] == "23:00"
    assert dates[1]["cutoff_time"] == "22:00"
    assert all(day["timezone"] == "Europe/London" for day in dates)
    assert all(day["is_past_cutoff"] is False for day in dates)


def test_available_dates_skips_blackouts_unless_asked(client, catalog):
    catalog.blackout(SATURDAY, reason="Maintenance")
    params = {"start_date": "2030-06-07", "end_date": "2030-06-08"}

    hidden = client.get("/available-dates", params=params).json()["dates"]
    shown = client.get("/available-dates", params={**params, "include_blackouts": "true"}).json()["dates"]

    assert [day["date"] for day in hidden] == ["2030-06-07"]
    assert shown[1]["is_blackout"] is True
    assert shown[1]["blackout_reason"] == "Maintenance"


def test_available_dates_defaults_to_today(client):
    body = client.get("/available-dates").json()

    assert body["start_date"] == "2030-06-05"
    assert body["dates"][0]["date"] == FRIDAY.isoformat()


def test_available_dates_rejects_inverted_range(client):
    response = client.get(
        "/available-dates",
        params={"start_date": "2030-06-16", "end_date": "2030-06-03"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidDate"


# -----------------------------
# Pricing
# -----------------------------
def test_pricing_for_date(client, catalog):
    booth = catalog.package(name="Booth", default_price="150.00")
    catalog.package(name="VIP", default_price="400.00")
    catalog.extra(name="Mystery", default_price=None)
    catalog.price_override(booth, SATURDAY, "180.00")

    response = client.get("/pricing", params={"date": SATURDAY.isoformat()})

    assert response.status_code == 200
    body = response.json()
    assert body["day_of_week"] == "Saturday"
    assert body["currency"] == "gbp"
    prices = {item["name"]: item for item in body["items"]}
    assert Decimal(prices["Booth"]["price"]) == Decimal("180.00")
    assert prices["Booth"]["is_override"] is True
    assert Decimal(prices["VIP"]["price"]) == Decimal("400.00")
    assert prices["VIP"]["is_override"] is False
    assert Decimal(prices["Mystery"]["price"]) == Decimal("0.00")
    assert prices["Mystery"]["message"] == "No pricing available"
