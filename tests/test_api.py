import logging
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from main import app, get_db
from models import Category, TransactionType
from sessions import SESSION_COOKIE, SessionUser, create_session_token


@pytest.fixture
def categories(session_factory):
    with session_factory() as session:
        food = Category(name="Food", type=TransactionType.expense, color="#F97316", icon="🍽️")
        salary = Category(name="Salary", type=TransactionType.income)
        session.add_all([food, salary])
        session.commit()
        return {"food": food.id, "salary": salary.id}


def post_expense(client, **overrides):
    payload = {
        "title": "Lunch",
        "amount": "12.50",
        "type": "expense",
        "categoryId": overrides.pop("category_id"),
        "date": "2024-01-05",
    }
    payload.update(overrides)
    return client.post("/api/v1/expenses", json=payload)


def test_protected_routes_require_a_session(client) -> None:
    for path in ["/api/v1/expenses", "/api/v1/expenses/stats", "/api/v1/expenses/1"]:
        response = client.get(path)
        assert response.status_code == 401
        assert response.json() == {"error": "You are not authenticated"}


def test_tampered_session_cookie_is_rejected(client, sign_in) -> None:
    sign_in("user-u")
    token = client.cookies.get("expenses_session")
    client.cookies.set("expenses_session", token[:-2] + "xx")

    assert client.get("/api/v1/expenses").status_code == 401


def test_create_then_get_round_trips_amount_and_category(
    client, sign_in, categories
) -> None:
    sign_in("user-u")

    created = post_expense(client, category_id=categories["food"])
    assert created.status_code == 201
    expense = created.json()["expense"]
    assert expense["amount"] == "12.50"
    assert expense["userId"] == "user-u"
    assert expense["status"] == "cleared"

    fetched = client.get(f"/api/v1/expenses/{expense['id']}")
    assert fetched.status_code == 200
    body = fetched.json()["expense"]
    assert body["amount"] == "12.50"
    assert body["categoryId"] == categories["food"]
    assert body["category"] == {
        "id": categories["food"],
        "name": "Food",
        "color": "#F97316",
        "icon": "🍽️",
    }


def test_filtered_listing_scenario(client, sign_in, categories) -> None:
    sign_in("user-u")
    lunch = post_expense(client, category_id=categories["food"]).json()["expense"]
    post_expense(
        client,
        category_id=categories["salary"],
        title="Paycheck",
        type="income",
        amount="2500.00",
        date="2024-01-15",
    )
    post_expense(client, category_id=categories["food"], date="2024-02-10")

    response = client.get(
        "/api/v1/expenses",
        params={"startDate": "2024-01-01", "endDate": "2024-01-31", "type": "expense"},
    )

    assert response.status_code == 200
    body = response.json()
    assert [e["id"] for e in body["expenses"]] == [lunch["id"]]
    assert body["expenses"][0]["category"]["name"] == "Food"
    assert body["pagination"] == {"total": 1, "page": 1, "limit": 10, "pages": 1}


def test_listing_filters_by_category_name(client, sign_in, categories) -> None:
    sign_in("user-u")
    post_expense(client, category_id=categories["food"])
    post_expense(client, category_id=categories["salary"], type="income", title="Pay")

    body = client.get("/api/v1/expenses", params={"category": "Salary"}).json()

    assert [e["title"] for e in body["expenses"]] == ["Pay"]
    assert body["pagination"]["total"] == 1


def test_invalid_filters_return_structured_400(client, sign_in) -> None:
    sign_in("user-u")

    response = client.get("/api/v1/expenses", params={"page": "abc", "type": "nope"})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request"
    assert {issue["field"] for issue in body["issues"]} == {"page", "type"}


def test_invalid_body_returns_400(client, sign_in, categories) -> None:
    sign_in("user-u")

    response = post_expense(client, category_id=categories["food"], amount="1.999")

    assert response.status_code == 400
    assert response.json()["issues"][0]["field"] == "amount"


def test_unknown_category_is_a_400(client, sign_in, categories) -> None:
    sign_in("user-u")

    response = post_expense(client, category_id=9999)

    assert response.status_code == 400
    assert response.json() == {"error": "Category not found"}


def test_cross_owner_access_is_not_found(client, sign_in, categories) -> None:
    sign_in("user-a")
    expense = post_expense(client, category_id=categories["food"]).json()["expense"]

    sign_in("user-b")
    url = f"/api/v1/expenses/{expense['id']}"
    assert client.get(url).status_code == 404
    assert client.delete(url).status_code == 404
    update = client.put(
        url,
        json={
            "title": "Mine now",
            "amount": "1.00",
            "type": "expense",
            "categoryId": categories["food"],
        },
    )
    assert update.status_code == 404
    assert client.get("/api/v1/expenses").json()["pagination"]["total"] == 0

    sign_in("user-a")
    assert client.get(url).json()["expense"]["title"] == "Lunch"


def test_update_replaces_mutable_fields(client, sign_in, categories) -> None:
    sign_in("user-u")
    expense = post_expense(client, category_id=categories["food"]).json()["expense"]

    response = client.put(
        f"/api/v1/expenses/{expense['id']}",
        json={
            "title": "Team lunch",
            "amount": "48.00",
            "type": "expense",
            "categoryId": categories["food"],
            "status": "pending",
            "notes": "split four ways",
        },
    )

    assert response.status_code == 200
    body = response.json()["expense"]
    assert body["title"] == "Team lunch"
    assert body["amount"] == "48.00"
    assert body["status"] == "pending"
    assert body["notes"] == "split four ways"
    assert body["date"] == expense["date"]


def test_delete_is_not_repeatable(client, sign_in, categories) -> None:
    sign_in("user-u")
    expense = post_expense(client, category_id=categories["food"]).json()["expense"]
    url = f"/api/v1/expenses/{expense['id']}"

    first = client.delete(url)
    second = client.delete(url)

    assert first.status_code == 200
    assert first.json() == {"success": True}
    assert second.status_code == 404


def test_stats_scenario(client, sign_in, categories) -> None:
    sign_in("user-u")
    recent = (datetime.utcnow() - timedelta(days=2)).isoformat()
    post_expense(
        client,
        category_id=categories["salary"],
        title="Paycheck",
        type="income",
        amount="100.00",
        date=recent,
    )
    post_expense(client, category_id=categories["food"], amount="40.00", date=recent)

    body = client.get("/api/v1/expenses/stats").json()

    assert body["last30Days"] == {"income": "100.00", "expenses": "40.00", "net": "60.00"}
    assert body["categoryBreakdown"] == [
        {
            "category": {
                "id": categories["food"],
                "name": "Food",
                "color": "#F97316",
                "icon": "🍽️",
            },
            "total": "40.00",
            "count": 1,
        }
    ]


def test_totals_default_to_zero_for_new_users(client, sign_in) -> None:
    sign_in("brand-new")

    assert client.get("/api/v1/expenses/total").json() == {"total": "0"}
    assert client.get("/api/v1/expenses/total-spent").json() == {"total": "0"}
    stats = client.get("/api/v1/expenses/stats").json()
    assert stats["last30Days"] == {"income": "0", "expenses": "0", "net": "0"}


def test_category_listings(client, sign_in, categories) -> None:
    sign_in("user-u")
    post_expense(client, category_id=categories["food"])

    all_categories = client.get("/api/v1/expenses/categories").json()["categories"]
    assert [c["name"] for c in all_categories] == ["Food", "Salary"]
    assert all_categories[0]["type"] == "expense"

    usage = client.get("/api/v1/expenses/categories/usage").json()["categories"]
    assert usage == [
        {
            "id": categories["food"],
            "name": "Food",
            "color": "#F97316",
            "icon": "🍽️",
            "type": "expense",
            "count": 1,
        }
    ]


def test_monthly_series_endpoint(client, sign_in) -> None:
    sign_in("user-u")

    body = client.get("/api/v1/expenses/monthly", params={"months": 6}).json()

    assert len(body["months"]) == 6
    assert all(month["net"] == "0" for month in body["months"])
    assert client.get("/api/v1/expenses/monthly", params={"months": 0}).status_code == 400


def test_csv_export_uses_the_same_filters(client, sign_in, categories) -> None:
    sign_in("user-u")
    post_expense(client, category_id=categories["food"], title="=HYPERLINK()")
    post_expense(client, category_id=categories["salary"], title="Pay", type="income")

    response = client.get("/api/v1/expenses/export.csv", params={"type": "expense"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("Date,Type,Status,Amount,Category,Title")
    assert len(lines) == 2
    assert "\t=HYPERLINK()" in lines[1]


def test_unknown_api_path_is_json_404(client) -> None:
    response = client.get("/api/v1/nope")

    assert response.status_code == 404
    assert response.json() == {"error": "API endpoint not found"}
    assert client.get("/api/v1/expenses/abc").status_code == 404


def test_out_of_range_paging_is_a_400(client, sign_in) -> None:
    sign_in("user-u")

    huge_page = client.get("/api/v1/expenses", params={"page": "100000000000000000000"})
    huge_limit = client.get("/api/v1/expenses", params={"limit": "500"})

    assert huge_page.status_code == 400
    assert huge_page.json()["issues"][0]["field"] == "page"
    assert huge_limit.status_code == 400
    issue = huge_limit.json()["issues"][0]
    assert issue["field"] == "limit"
    assert "100" in issue["message"]


def test_unexpected_errors_are_logged_and_hidden(caplog) -> None:
    def broken_db():
        raise RuntimeError("connection pool exhausted")

    app.dependency_overrides[get_db] = broken_db
    try:
        with TestClient(app, raise_server_exceptions=False) as failing:
            failing.cookies.set(
                SESSION_COOKIE, create_session_token(SessionUser(id="user-u"))
            )
            with caplog.at_level(logging.INFO, logger="main"):
                response = failing.get("/api/v1/expenses/stats")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert errors[0].getMessage().startswith(
        "unhandled_error: method=GET path=/api/v1/expenses/stats"
    )
    assert isinstance(errors[0].exc_info[1], RuntimeError)
    assert any(
        "path=/api/v1/expenses/stats status=500" in r.getMessage()
        for r in caplog.records
    )
