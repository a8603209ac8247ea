"""
Integration tests for eSewa checkout.

WHAT: Initiate, complete (purchase and boost), replay, failure paths
WHY: Callbacks can be forged or replayed; each payment applies once
HOW: Build signed callback blobs the way eSewa does; respx stands in for
     the remote status API when remote verification is switched on
"""

import base64
import json

import httpx
import pytest
import respx

from app.core.config import settings
from app.services.payment_service import sign

API = "/api/v1/payments/esewa"
CALLBACK_FIELDS = "transaction_code,status,total_amount,transaction_uuid,product_code,signed_field_names"


def callback_data(fields: dict, status: str = "COMPLETE", total_amount: str = None) -> str:
    """Encode the success-redirect blob for an initiated payment."""
    payload = {
        "transaction_code": "000AWEO",
        "status": status,
        "total_amount": total_amount or fields["total_amount"],
        "transaction_uuid": fields["transaction_uuid"],
        "product_code": fields["product_code"],
        "signed_field_names": CALLBACK_FIELDS,
    }
    payload["signature"] = sign(payload, CALLBACK_FIELDS)
    return base64.b64encode(json.dumps(payload).encode()).decode()


def initiate(client, user, product, purpose="purchase"):
    return client.post(f"{API}/initiate", headers=user.headers,
                       json={"product_id": product["id"], "purpose": purpose})


def complete(client, user, data):
    return client.post(f"{API}/complete", headers=user.headers, json={"data": data})


@pytest.fixture
def sale(make_user, make_product):
    seller, buyer = make_user("Sita"), make_user("Bikash")
    product = make_product(seller, title="Denim Jacket", price=1000)
    return seller, buyer, product


@pytest.mark.integration
@pytest.mark.payments
class TestInitiate:

    def test_signed_form_at_list_price(self, client, sale):
        _, buyer, product = sale

        response = initiate(client, buyer, product)

        assert response.status_code == 200
        body = response.json()
        fields = body["fields"]
        assert body["url"] == settings.ESEWA_FORM_URL
        assert fields["total_amount"] == "1000"
        assert fields["transaction_uuid"].startswith("THRIFTLY-")
        assert fields["transaction_uuid"].endswith(f"-{product['id']}")
        assert fields["signed_field_names"] == "total_amount,transaction_uuid,product_code"
        assert fields["signature"] == sign(fields)

    def test_accepted_offer_sets_amount(self, client, sale):
        seller, buyer, product = sale
        offer = client.post("/api/v1/offers", headers=buyer.headers,
                            json={"product_id": product["id"], "amount": 750}).json()["offer"]
        client.put(f"/api/v1/offers/{offer['id']}", headers=seller.headers, json={"action": "accept"})

        fields = initiate(client, buyer, product).json()["fields"]

        assert fields["total_amount"] == "750"

    def test_cannot_pay_for_own_item(self, client, sale):
        seller, _, product = sale

        assert initiate(client, seller, product).status_code == 409

    def test_only_owner_boosts(self, client, sale):
        seller, buyer, product = sale

        assert initiate(client, buyer, product, "boost").status_code == 403
        fields = initiate(client, seller, product, "boost").json()["fields"]
        assert fields["transaction_uuid"].startswith("BOOST-")
        assert fields["total_amount"] == "100"


@pytest.mark.integration
@pytest.mark.payments
class TestComplete:

    def test_purchase_completes_once(self, client, sale):
        seller, buyer, product = sale
        fields = initiate(client, buyer, product).json()["fields"]
        data = callback_data(fields)

        first = complete(client, buyer, data)
        replay = complete(client, buyer, data)

        assert first.status_code == 200
        result = first.json()
        assert result["payment_status"] == "complete"
        assert result["order_id"] is not None
        assert "replayed" not in result

        assert replay.status_code == 200
        assert replay.json()["replayed"] is True
        assert replay.json()["order_id"] == result["order_id"]

        assert len(client.get("/api/v1/orders/mine", headers=buyer.headers).json()) == 1
        sale_notes = [n for n in client.get("/api/v1/notifications", headers=seller.headers).json()
                      if n["type"] == "sale"]
        assert len(sale_notes) == 1

    def test_forged_signature_rejected(self, client, sale):
        _, buyer, product = sale
        fields = initiate(client, buyer, product).json()["fields"]
        payload = json.loads(base64.b64decode(callback_data(fields)))
        payload["total_amount"] = "1"
        forged = base64.b64encode(json.dumps(payload).encode()).decode()

        response = complete(client, buyer, forged)

        assert response.status_code == 400
        assert response.json() == {"Error": "Invalid payment signature"}
        assert client.get("/api/v1/orders/mine", headers=buyer.headers).json() == []

    def test_underpayment_rejected(self, client, sale):
        _, buyer, product = sale
        fields = initiate(client, buyer, product).json()["fields"]

        response = complete(client, buyer, callback_data(fields, total_amount="10"))

        assert response.status_code == 400

    def test_incomplete_status_rejected(self, client, sale):
        _, buyer, product = sale
        fields = initiate(client, buyer, product).json()["fields"]

        response = complete(client, buyer, callback_data(fields, status="PENDING"))

        assert response.status_code == 400

    def test_other_user_cannot_complete(self, client, sale, make_user):
        _, buyer, product = sale
        stranger = make_user("Gita")
        fields = initiate(client, buyer, product).json()["fields"]

        assert complete(client, stranger, callback_data(fields)).status_code == 403

    def test_garbage_data_rejected(self, client, sale):
        _, buyer, _ = sale

        assert complete(client, buyer, "bm90IGpzb24=").status_code == 400

    def test_boost_extends_listing(self, client, sale):
        seller, _, product = sale
        fields = initiate(client, seller, product, "boost").json()["fields"]

        result = complete(client, seller, callback_data(fields)).json()

        assert result["purpose"] == "boost"
        assert result["boost_expires_at"]
        listing = client.get(f"/api/v1/products/{product['id']}").json()
        assert listing["is_boosted"] is True
        assert listing["is_sold"] is False

    def test_failed_payment_cannot_complete(self, client, sale):
        _, buyer, product = sale
        fields = initiate(client, buyer, product).json()["fields"]

        failed = client.post(f"{API}/fail", headers=buyer.headers,
                             json={"transaction_uuid": fields["transaction_uuid"]})

        assert failed.json()["payment_status"] == "failed"
        assert complete(client, buyer, callback_data(fields)).status_code == 409


@pytest.mark.integration
@pytest.mark.payments
class TestRemoteVerification:

    def test_remote_complete_accepted(self, client, sale, monkeypatch):
        _, buyer, product = sale
        monkeypatch.setattr(settings, "ESEWA_VERIFY_REMOTE", True)
        fields = initiate(client, buyer, product).json()["fields"]

        with respx.mock:
            route = respx.get(url__startswith=settings.ESEWA_STATUS_URL).mock(
                return_value=httpx.Response(200, json={"status": "COMPLETE", "ref_id": "000AWEO"})
            )
            response = complete(client, buyer, callback_data(fields))

        assert response.status_code == 200
        assert route.called
        assert route.calls.last.request.url.params["transaction_uuid"] == fields["transaction_uuid"]

    def test_remote_pending_rejected(self, client, sale, monkeypatch):
        _, buyer, product = sale
        monkeypatch.setattr(settings, "ESEWA_VERIFY_REMOTE", True)
        fields = initiate(client, buyer, product).json()["fields"]

        with respx.mock:
            respx.get(url__startswith=settings.ESEWA_STATUS_URL).mock(
                return_value=httpx.Response(200, json={"status": "PENDING"})
            )
            response = complete(client, buyer, callback_data(fields))

        assert response.status_code == 400
        assert client.get("/api/v1/orders/mine", headers=buyer.headers).json() == []

    def test_gateway_down(self, client, sale, monkeypatch):
        _, buyer, product = sale
        monkeypatch.setattr(settings, "ESEWA_VERIFY_REMOTE", True)
        fields = initiate(client, buyer, product).json()["fields"]

        with respx.mock:
            respx.get(url__startswith=settings.ESEWA_STATUS_URL).mock(side_effect=httpx.ConnectError("down"))
            response = complete(client, buyer, callback_data(fields))

        assert response.status_code == 400
        assert response.json() == {"Error": "Could not verify payment with eSewa"}
