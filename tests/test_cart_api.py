from bson import ObjectId

from conftest import auth_headers, make_product


def test_cart_is_created_on_first_add(client, user_headers, product):
    assert client.get("/api/cart", headers=user_headers).status_code == 404

    res = client.post("/api/cart", json={"productId": str(product["_id"]), "quantity": 2}, headers=user_headers)
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["totalPrice"] == 200
    assert data["items"] == [{"product": str(product["_id"]), "quantity": 2, "price": 100}]

    cart = client.get("/api/cart", headers=user_headers).json()["data"]
    assert cart["items"][0]["product"]["title"] == product["title"]


def test_adding_same_product_twice_keeps_one_line(client, user_headers, product):
    body = {"productId": str(product["_id"]), "quantity": 2}
    client.post("/api/cart", json=body, headers=user_headers)
    data = client.post("/api/cart", json=body, headers=user_headers).json()["data"]
    assert len(data["items"]) == 1
    assert data["items"][0]["quantity"] == 4
    assert data["totalPrice"] == 400


def test_add_uses_current_discounted_price(client, admin_headers, user_headers, product):
    body = {"productId": str(product["_id"]), "quantity": 1}
    client.post("/api/cart", json=body, headers=user_headers)
    client.put(f"/api/products/{product['_id']}", json={"sale": 50}, headers=admin_headers)
    data = client.post("/api/cart", json=body, headers=user_headers).json()["data"]
    assert data["items"][0]["price"] == 50
    assert data["totalPrice"] == 100


def test_add_unknown_product_is_not_found(client, user_headers):
    res = client.post("/api/cart", json={"productId": str(ObjectId()), "quantity": 1}, headers=user_headers)
    assert res.status_code == 404


def test_add_rejects_zero_quantity(client, user_headers, product):
    res = client.post("/api/cart", json={"productId": str(product["_id"]), "quantity": 0}, headers=user_headers)
    assert res.status_code == 400


def test_decrease_and_remove(client, db, user_headers, category, product):
    other = make_product(db, category, title="Sock Pack", price=5)
    client.post("/api/cart", json={"productId": str(product["_id"]), "quantity": 1}, headers=user_headers)
    client.post("/api/cart", json={"productId": str(other["_id"]), "quantity": 3}, headers=user_headers)

    data = client.put(f"/api/cart/{other['_id']}/decrease", headers=user_headers).json()["data"]
    assert data["totalPrice"] == 110

    data = client.put(f"/api/cart/{product['_id']}/decrease", headers=user_headers).json()["data"]
    assert [i["product"] for i in data["items"]] == [str(other["_id"])]
    assert data["totalPrice"] == 10

    res = client.put(f"/api/cart/{product['_id']}/decrease", headers=user_headers)
    assert res.status_code == 404

    data = client.delete(f"/api/cart/{product['_id']}", headers=user_headers).json()["data"]
    assert data["totalPrice"] == 10
    data = client.delete(f"/api/cart/{other['_id']}", headers=user_headers).json()["data"]
    assert data["items"] == []
    assert data["totalPrice"] == 0


def test_cart_routes_require_token(client):
    assert client.get("/api/cart").status_code == 401
    assert client.post("/api/orders").status_code == 401


def test_checkout_creates_order_and_empties_cart(client, user_headers, product):
    client.post("/api/cart", json={"productId": str(product["_id"]), "quantity": 3}, headers=user_headers)

    res = client.post("/api/orders", json={"paymentMethod": "card"}, headers=user_headers)
    assert res.status_code == 201
    order = res.json()["data"]
    assert order["totalPrice"] == 300
    assert order["paymentMethod"] == "card"
    assert order["items"][0]["quantity"] == 3

    cart = client.get("/api/cart", headers=user_headers).json()["data"]
    assert cart["items"] == []
    assert cart["totalPrice"] == 0

    res = client.post("/api/orders", headers=user_headers)
    assert res.status_code == 400

    orders = client.get("/api/orders", headers=user_headers).json()["data"]
    assert len(orders) == 1
    assert orders[0]["items"][0]["product"]["title"] == product["title"]


def test_checkout_defaults_to_cash(client, user_headers, product):
    client.post("/api/cart", json={"productId": str(product["_id"])}, headers=user_headers)
    order = client.post("/api/orders", headers=user_headers).json()["data"]
    assert order["paymentMethod"] == "cash"


def test_only_owner_can_delete_order(client, user_headers, other_user, product):
    client.post("/api/cart", json={"productId": str(product["_id"])}, headers=user_headers)
    order_id = client.post("/api/orders", headers=user_headers).json()["data"]["id"]

    assert client.delete(f"/api/orders/{order_id}", headers=auth_headers(other_user)).status_code == 403
    assert client.get("/api/orders", headers=auth_headers(other_user)).json()["data"] == []

    res = client.delete(f"/api/orders/{order_id}", headers=user_headers)
    assert res.status_code == 200
    assert client.get("/api/orders", headers=user_headers).json()["data"] == []
    assert client.delete(f"/api/orders/{order_id}", headers=user_headers).status_code == 404
