"""Integration tests for the order endpoints via TestClient."""

BUYER = {"X-User-Id": "buyer-1", "X-User-Role": "buyer"}
SELLER = {"X-User-Id": "seller-1", "X-User-Role": "seller"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
ADDRESS = {"street": "1 Market St", "city": "San Francisco", "state": "CA", "zipCode": "94105", "country": "US"}


class TestCreateOrder:
    def test_places_order_from_cart(self, client, api_order):
        body = api_order(price=10.0, quantity=2)

        assert body["status"] == "PENDING"
        assert body["paymentStatus"] == "PENDING"
        assert (body["subtotal"], body["tax"], body["shipping"], body["total"]) == (20.0, 2.0, 10.0, 32.0)
        assert body["orderNumber"].startswith("ORD-")
        assert body["shippingAddress"]["zipCode"] == "94105"
        [item] = body["items"]
        assert (item["quantity"], item["price"], item["total"], item["sellerId"]) == (2, 10.0, 20.0, "seller-1")

    def test_reserves_stock_and_clears_cart(self, client, api_order):
        body = api_order(quantity=3, stock=5)
        product_id = body["items"][0]["productId"]

        assert client.get(f"/products/{product_id}").json()["stock"] == 2
        assert client.get("/cart", headers=BUYER).json()["items"] == []

    def test_empty_cart(self, client):
        response = client.post("/orders", json={"shippingAddress": ADDRESS, "paymentMethod": "card"}, headers=BUYER)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    def test_missing_shipping_address(self, client):
        response = client.post("/orders", json={"paymentMethod": "card"}, headers=BUYER)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    def test_requires_identity(self, client):
        response = client.post("/orders", json={"shippingAddress": ADDRESS, "paymentMethod": "card"})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthenticated"


class TestReadOrders:
    def test_buyer_sees_own_order(self, client, api_order):
        order_id = api_order()["id"]
        response = client.get(f"/orders/{order_id}", headers=BUYER)
        assert response.status_code == 200
        assert response.json()["id"] == order_id

    def test_seller_of_an_item_can_view(self, client, api_order):
        order_id = api_order()["id"]
        assert client.get(f"/orders/{order_id}", headers=SELLER).status_code == 200

    def test_stranger_cannot_view(self, client, api_order):
        order_id = api_order()["id"]
        response = client.get(f"/orders/{order_id}", headers={"X-User-Id": "someone-else"})
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "forbidden"

    def test_unknown_order(self, client):
        response = client.get("/orders/does-not-exist", headers=BUYER)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"

    def test_list_is_paginated(self, client, api_order):
        for _ in range(3):
            api_order(quantity=1)

        body = client.get("/orders", params={"page": 1, "limit": 2}, headers=BUYER).json()
        assert len(body["orders"]) == 2
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

    def test_admin_listing(self, client, api_order):
        order = api_order()
        assert client.get("/orders/admin/all", headers=BUYER).status_code == 403

        body = client.get("/orders/admin/all", params={"search": order["orderNumber"][-6:]}, headers=ADMIN).json()
        assert [o["id"] for o in body["orders"]] == [order["id"]]


    def test_seller_listing_shows_only_their_lines(self, client, api_order):
        other_seller = {"X-User-Id": "seller-2", "X-User-Role": "seller"}
        gadget = client.post("/products", json={"name": "Gadget", "price": 5.0, "stock": 5}, headers=other_seller)
        client.post("/cart", json={"productId": gadget.json()["id"], "quantity": 1}, headers=BUYER)
        order = api_order(quantity=2)
        assert len(order["items"]) == 2

        assert client.get("/orders/seller/orders", headers=BUYER).status_code == 403

        body = client.get("/orders/seller/orders", params={"limit": 5}, headers=SELLER).json()
        assert [o["id"] for o in body["orders"]] == [order["id"]]
        assert [item["sellerId"] for item in body["orders"][0]["items"]] == ["seller-1"]
        assert body["pagination"] == {"page": 1, "limit": 5, "total": 1, "pages": 1}


class TestStatusChanges:
    def test_cancel_restores_stock(self, client, api_order):
        order = api_order(quantity=3, stock=5)
        product_id = order["items"][0]["productId"]

        response = client.post(f"/orders/{order['id']}/cancel", json={"reason": "Changed my mind"}, headers=BUYER)

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert response.json()["cancellationReason"] == "Changed my mind"
        assert client.get(f"/products/{product_id}").json()["stock"] == 5

    def test_cancel_twice_is_rejected(self, client, api_order):
        order_id = api_order()["id"]
        client.post(f"/orders/{order_id}/cancel", headers=BUYER)

        response = client.post(f"/orders/{order_id}/cancel", headers=BUYER)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_transition"

    def test_seller_advances_status(self, client, api_order):
        order_id = api_order()["id"]
        for status in ("PROCESSING", "SHIPPED", "DELIVERED"):
            response = client.put(f"/orders/{order_id}/status", json={"status": status}, headers=SELLER)
            assert response.status_code == 200
            assert response.json()["status"] == status
        assert response.json()["deliveredAt"] is not None

    def test_skipping_a_state_is_rejected(self, client, api_order):
        order_id = api_order()["id"]
        response = client.put(f"/orders/{order_id}/status", json={"status": "DELIVERED"}, headers=SELLER)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_transition"

    def test_buyer_cannot_ship(self, client, api_order):
        order_id = api_order()["id"]
        response = client.put(f"/orders/{order_id}/status", json={"status": "PROCESSING"}, headers=BUYER)
        assert response.status_code == 403

    def test_unknown_status(self, client, api_order):
        order_id = api_order()["id"]
        response = client.put(f"/orders/{order_id}/status", json={"status": "LOST"}, headers=SELLER)
        assert response.status_code == 400
