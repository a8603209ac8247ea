"""
Integration tests for the admin console.

WHAT: Stats, user and order oversight, role enforcement
WHY: Moderation routes must be admin-only
HOW: One admin (by configured email) and regular accounts
"""

import pytest

API = "/api/v1/admin"


@pytest.fixture
def admin(make_user):
    return make_user("Root", "admin@thriftly.test")


@pytest.mark.integration
class TestAdminConsole:

    def test_dashboard_stats(self, client, admin, make_user, make_product):
        seller, buyer = make_user("Sita"), make_user("Bikash")
        sold = make_product(seller, price=1200)
        make_product(seller, title="Second")
        client.post("/api/v1/orders", headers=buyer.headers, json={"product_id": sold["id"]})

        stats = client.get(f"{API}/stats", headers=admin.headers).json()

        assert stats["users"] == 3
        assert stats["products"] == 2
        assert stats["active_listings"] == 1
        assert stats["orders"] == 1
        assert stats["revenue"] == 1200
        assert stats["open_reports"] == 0

    def test_orders_show_both_parties(self, client, admin, make_user, make_product):
        seller, buyer = make_user("Sita"), make_user("Bikash")
        product = make_product(seller)
        client.post("/api/v1/orders", headers=buyer.headers, json={"product_id": product["id"]})

        orders = client.get(f"{API}/orders", headers=admin.headers).json()

        assert (orders[0]["buyer_name"], orders[0]["seller_name"]) == ("Bikash", "Sita")

    def test_delete_user_removes_their_listings(self, client, admin, make_user, make_product):
        seller = make_user("Sita")
        make_product(seller)

        assert client.delete(f"{API}/users/{seller.id}", headers=admin.headers).status_code == 200
        assert client.get("/api/v1/products").json() == []
        assert [u["username"] for u in client.get(f"{API}/users", headers=admin.headers).json()] == ["Root"]

    def test_deleted_user_token_stops_working(self, client, admin, make_user):
        alice = make_user("Alice")
        client.delete(f"{API}/users/{alice.id}", headers=admin.headers)

        assert client.get("/api/v1/auth/me", headers=alice.headers).status_code == 401

    def test_admin_cannot_delete_self(self, client, admin):
        assert client.delete(f"{API}/users/{admin.id}", headers=admin.headers).status_code == 409

    @pytest.mark.parametrize("path", ["/stats", "/users", "/products", "/orders", "/reports"])
    def test_regular_user_forbidden(self, client, make_user, path):
        alice = make_user("Alice")

        assert client.get(f"{API}{path}", headers=alice.headers).status_code == 403
