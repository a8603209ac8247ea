"""
Integration tests for the offer state machine.

WHAT: Create, list, accept and reject offers plus their notifications
WHY: An offer resolves exactly once and the buyer hears about it once
HOW: Seller and buyer accounts driving the REST endpoints
"""

import pytest

API = "/api/v1"


@pytest.fixture
def listing(make_user, make_product):
    seller = make_user("Sita")
    buyer = make_user("Bikash")
    product = make_product(seller, title="Denim Jacket", price=1000)
    return seller, buyer, product


def make_offer(client, buyer, product, amount=800):
    return client.post(f"{API}/offers", headers=buyer.headers,
                       json={"product_id": product["id"], "amount": amount})


def offer_notifications(client, user):
    return [n for n in client.get(f"{API}/notifications", headers=user.headers).json() if n["type"] == "offer"]


@pytest.mark.integration
class TestOfferLifecycle:

    def test_offer_accept_flow(self, client, listing):
        seller, buyer, product = listing

        response = make_offer(client, buyer, product, 800)
        assert response.status_code == 200
        offer = response.json()["offer"]
        assert offer["status"] == "pending"
        assert offer["seller_id"] == seller.id

        seller_notes = offer_notifications(client, seller)
        assert len(seller_notes) == 1
        assert "800" in seller_notes[0]["text"]

        received = client.get(f"{API}/offers/received", headers=seller.headers).json()
        assert [o["id"] for o in received] == [offer["id"]]
        assert received[0]["buyer_name"] == "Bikash"

        response = client.put(f"{API}/offers/{offer['id']}", headers=seller.headers, json={"action": "accept"})
        assert response.status_code == 200
        assert response.json()["offer"]["status"] == "accepted"

        buyer_notes = offer_notifications(client, buyer)
        assert len(buyer_notes) == 1
        assert "accepted" in buyer_notes[0]["text"]

        sent = client.get(f"{API}/offers/sent", headers=buyer.headers).json()
        assert sent[0]["status"] == "accepted"

    def test_reject(self, client, listing):
        seller, buyer, product = listing
        offer = make_offer(client, buyer, product).json()["offer"]

        response = client.put(f"{API}/offers/{offer['id']}", headers=seller.headers, json={"action": "reject"})

        assert response.json()["offer"]["status"] == "rejected"
        assert "rejected" in offer_notifications(client, buyer)[0]["text"]

    def test_second_resolution_conflicts_without_second_notification(self, client, listing):
        seller, buyer, product = listing
        offer = make_offer(client, buyer, product).json()["offer"]
        client.put(f"{API}/offers/{offer['id']}", headers=seller.headers, json={"action": "accept"})

        again = client.put(f"{API}/offers/{offer['id']}", headers=seller.headers, json={"action": "reject"})

        assert again.status_code == 409
        assert again.json() == {"Error": "Offer already accepted"}
        assert len(offer_notifications(client, buyer)) == 1

    def test_received_filters_by_status(self, client, listing, make_user):
        seller, buyer, product = listing
        other = make_user("Gita")
        first = make_offer(client, buyer, product, 700).json()["offer"]
        make_offer(client, other, product, 900)
        client.put(f"{API}/offers/{first['id']}", headers=seller.headers, json={"action": "reject"})

        pending = client.get(f"{API}/offers/received", headers=seller.headers, params={"status": "pending"}).json()

        assert [o["amount"] for o in pending] == [900]


@pytest.mark.integration
class TestOfferRules:

    def test_offer_on_own_listing(self, client, listing):
        seller, _, product = listing

        response = make_offer(client, seller, product)

        assert response.status_code == 409

    def test_non_seller_cannot_resolve(self, client, listing, make_user):
        seller, buyer, product = listing
        stranger = make_user("Gita")
        offer = make_offer(client, buyer, product).json()["offer"]

        for actor in (buyer, stranger):
            response = client.put(f"{API}/offers/{offer['id']}", headers=actor.headers, json={"action": "accept"})
            assert response.status_code == 403

        assert client.get(f"{API}/offers/sent", headers=buyer.headers).json()[0]["status"] == "pending"

    def test_non_positive_amount(self, client, listing):
        _, buyer, product = listing

        assert make_offer(client, buyer, product, 0).status_code == 400

    def test_unknown_offer(self, client, listing):
        seller, _, _ = listing

        response = client.put(f"{API}/offers/424242", headers=seller.headers, json={"action": "accept"})

        assert response.status_code == 404

    def test_bad_action(self, client, listing):
        seller, buyer, product = listing
        offer = make_offer(client, buyer, product).json()["offer"]

        response = client.put(f"{API}/offers/{offer['id']}", headers=seller.headers, json={"action": "maybe"})

        assert response.status_code == 400

    def test_offer_on_sold_item(self, client, listing, make_user):
        seller, buyer, product = listing
        other = make_user("Gita")
        client.post(f"{API}/orders", headers=other.headers, json={"product_id": product["id"]})

        response = make_offer(client, buyer, product)

        assert response.status_code == 409
        assert response.json() == {"Error": "Item already sold"}

    def test_accept_after_item_sold_conflicts(self, client, listing, make_user):
        seller, buyer, product = listing
        other = make_user("Gita")
        offer = make_offer(client, buyer, product).json()["offer"]
        client.post(f"{API}/orders", headers=other.headers, json={"product_id": product["id"]})

        response = client.put(f"{API}/offers/{offer['id']}", headers=seller.headers, json={"action": "accept"})

        assert response.status_code == 409
        assert response.json() == {"Error": "Item already sold"}
        assert client.get(f"{API}/offers/sent", headers=buyer.headers).json()[0]["status"] == "pending"
        assert offer_notifications(client, buyer) == []

    def test_reject_after_item_sold_allowed(self, client, listing, make_user):
        seller, buyer, product = listing
        other = make_user("Gita")
        offer = make_offer(client, buyer, product).json()["offer"]
        client.post(f"{API}/orders", headers=other.headers, json={"product_id": product["id"]})

        response = client.put(f"{API}/offers/{offer['id']}", headers=seller.headers, json={"action": "reject"})

        assert response.status_code == 200
        assert response.json()["offer"]["status"] == "rejected"
