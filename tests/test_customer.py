from datetime import datetime, timedelta, timezone

from sqlmodel import select

from storefront.api import user as user_api
from storefront.auth import verify_password
from storefront.models.audit import AuditAction, AuditLog
from storefront.models.customer import Address, CartItem
from storefront.models.notification import Notification
from storefront.models.order import OrderStatus
from storefront.models.user import Role, User, UserSession, Verification


def test_cart_flow(client, make_user, auth_headers, make_product):
    headers = auth_headers(make_user())
    product = make_product(price=10.0, stock=5, discount_price=8.0)

    response = client.post("/api/cart", headers=headers, json={"productId": product.id, "quantity": 2})
    assert response.status_code == 200
    cart = response.json()["data"]
    assert cart["item_count"] == 2
    assert cart["subtotal"] == 16.0

    # Adding the same product again merges the line
    cart = client.post("/api/cart", headers=headers, json={"productId": product.id}).json()["data"]
    assert len(cart["items"]) == 1
    assert cart["item_count"] == 3

    item_id = cart["items"][0]["id"]
    assert client.put(f"/api/cart/{item_id}", headers=headers, json={"quantity": 6}).status_code == 400
    assert client.put(f"/api/cart/{item_id}", headers=headers, json={"quantity": 5}).json()["data"]["item_count"] == 5

    assert client.delete("/api/cart", headers=headers).json()["data"]["items"] == []


def test_cart_rejects_inactive_and_unknown_products(client, make_user, auth_headers, make_product):
    headers = auth_headers(make_user())
    inactive = make_product(is_active=False)
    assert client.post("/api/cart", headers=headers, json={"productId": inactive.id}).status_code == 400
    assert client.post("/api/cart", headers=headers, json={"productId": 9999}).status_code == 404


def test_cart_items_are_private(client, session, make_user, auth_headers, make_product):
    owner = make_user()
    item = CartItem(user_id=owner.id, product_id=make_product().id, quantity=1)
    session.add(item)
    session.commit()
    response = client.delete(f"/api/cart/{item.id}", headers=auth_headers(make_user()))
    assert response.status_code == 404


def test_cart_requires_session(client):
    assert client.get("/api/cart").status_code == 401


def test_wishlist(client, make_user, auth_headers, make_product):
    headers = auth_headers(make_user())
    product = make_product()
    response = client.post("/api/wishlist", headers=headers, json={"productId": product.id})
    assert response.status_code == 201
    assert client.post("/api/wishlist", headers=headers, json={"productId": product.id}).status_code == 409

    items = client.get("/api/wishlist", headers=headers).json()["data"]
    assert items[0]["product"]["id"] == product.id
    assert client.delete(f"/api/wishlist/{items[0]['id']}", headers=headers).status_code == 200
    assert client.get("/api/wishlist", headers=headers).json()["data"] == []


def address_payload(**overrides):
    return {
        "firstName": "Awa", "lastName": "Traoré", "address": "Rue 12", "city": "Bamako",
        "country": "ML", "zipCode": "", "phone": "+223 70 00 00 00", **overrides,
    }


def test_addresses_single_default(client, session, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    first = client.post("/api/addresses", headers=headers, json=address_payload()).json()["data"]
    assert first["is_default"] is True

    second = client.post("/api/addresses", headers=headers, json=address_payload(isDefault=True)).json()["data"]
    defaults = session.exec(select(Address).where(Address.user_id == user.id, Address.is_default == True)).all()
    assert [address.id for address in defaults] == [second["id"]]

    assert client.post("/api/addresses", headers=headers, json=address_payload(city=" ")).status_code == 400
    assert client.delete(f"/api/addresses/{first['id']}", headers=auth_headers(make_user())).status_code == 404
    assert client.put(f"/api/addresses/{first['id']}", headers=headers, json={"city": "Ségou"}).json()["data"]["city"] == "Ségou"


def test_profile_update_and_password_change(client, session, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    response = client.put("/api/user/profile", headers=headers, json={"name": "Awa", "phone": "70000000"})
    assert response.json()["data"]["name"] == "Awa"

    response = client.post("/api/user/profile/change-password", headers=headers,
                           json={"currentPassword": "wrong-one", "newPassword": "new-password"})
    assert response.status_code == 400
    response = client.post("/api/user/profile/change-password", headers=headers,
                           json={"currentPassword": "correct-horse", "newPassword": "new-password"})
    assert response.status_code == 200
    assert verify_password("new-password", user.hashed_password)


def test_password_reset_by_emailed_code(client, session, monkeypatch, make_user, auth_headers):
    sent = []
    monkeypatch.setattr(user_api, "send_verification_code_email", lambda email, code: sent.append((email, code)) or True)
    user = make_user(email="awa@example.com")
    headers = auth_headers(user)

    assert client.post("/api/user/reset-password/send-code", headers=headers,
                       json={"email": "other@example.com"}).status_code == 400
    response = client.post("/api/user/reset-password/send-code", headers=headers, json={"email": "AWA@example.com"})
    assert response.status_code == 200
    email, code = sent[-1]
    assert email == "awa@example.com"
    assert len(code) == 6 and code.isdigit()

    wrong = "000000" if code != "000000" else "111111"
    payload = {"code": wrong, "newPassword": "brand-new-pass", "confirmPassword": "brand-new-pass"}
    assert client.post("/api/user/reset-password/verify", headers=headers, json=payload).status_code == 400
    mismatch = {**payload, "code": code, "confirmPassword": "something-else"}
    assert client.post("/api/user/reset-password/verify", headers=headers, json=mismatch).status_code == 400

    response = client.post("/api/user/reset-password/verify", headers=headers, json={**payload, "code": code})
    assert response.status_code == 200
    assert verify_password("brand-new-pass", user.hashed_password)
    assert session.exec(select(Verification)).first() is None


def test_expired_reset_code_is_discarded(client, session, make_user, auth_headers):
    user = make_user(email="awa@example.com")
    session.add(Verification(identifier=user.email, value="123456",
                             expires_at=datetime.now(timezone.utc) - timedelta(minutes=1)))
    session.commit()
    response = client.post("/api/user/reset-password/verify", headers=auth_headers(user), json={
        "code": "123456", "newPassword": "brand-new-pass", "confirmPassword": "brand-new-pass",
    })
    assert response.status_code == 400
    assert "expired" in response.json()["error"]
    assert session.exec(select(Verification)).first() is None
    assert verify_password("correct-horse", user.hashed_password)


def test_push_token(client, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    assert client.post("/api/user/push-token", headers=headers, json={"pushToken": "abc"}).status_code == 400
    assert client.post("/api/user/push-token", headers=headers,
                       json={"pushToken": "ExponentPushToken[xyz]"}).status_code == 200
    assert user.push_token == "ExponentPushToken[xyz]"
    client.delete("/api/user/push-token", headers=headers)
    assert user.push_token is None


def test_delete_account(client, session, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    response = client.delete("/api/user/delete-account", headers=headers)
    assert response.status_code == 200
    assert session.get(User, user.id) is None
    assert session.exec(select(UserSession).where(UserSession.user_id == user.id)).first() is None


def test_delete_account_keeps_orders(client, session, make_user, auth_headers, make_product, make_order):
    user = make_user()
    order = make_order(user, make_product())
    client.delete("/api/user/delete-account", headers=auth_headers(user))
    anonymized = session.get(User, user.id)
    assert anonymized.email == f"deleted_{user.id}@sissan-sissan.net"
    assert anonymized.hashed_password is None
    assert order.user_id == user.id


def test_delete_account_after_login_with_foreign_keys(client, session, foreign_keys, make_user):
    user = make_user(email="awa@example.com")
    session.add(Address(user_id=user.id, first_name="Awa", last_name="Traoré", address="Rue 12", city="Bamako",
                        country="ML", zip_code="", phone="70000000"))
    session.commit()
    token = client.post("/api/auth/mobile/login", json={"email": "awa@example.com", "password": "correct-horse"}).json()["token"]

    response = client.delete("/api/user/delete-account", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert session.get(User, user.id) is None
    assert session.exec(select(Address)).first() is None

    login = session.exec(select(AuditLog).where(AuditLog.action == AuditAction.LOGIN)).one()
    assert login.user_id is None
    assert login.user_email == "awa@example.com"


def test_delete_account_with_orders_and_foreign_keys(client, session, foreign_keys, make_user, auth_headers,
                                                      make_product, make_order):
    user = make_user()
    make_order(user, make_product())
    response = client.delete("/api/user/delete-account", headers=auth_headers(user))
    assert response.status_code == 200
    assert session.get(User, user.id).email == f"deleted_{user.id}@sissan-sissan.net"


def test_staff_cannot_delete_own_account(client, make_user, auth_headers):
    response = client.delete("/api/user/delete-account", headers=auth_headers(make_user(role=Role.MANAGER)))
    assert response.status_code == 403


def test_notifications(client, session, make_user, auth_headers, grant, make_product, make_order):
    customer = make_user()
    headers = auth_headers(customer)
    staff = make_user(role=Role.PERSONNEL)
    staff_headers = auth_headers(staff)

    body = {"userId": customer.id, "title": "Promo", "message": "-20% ce week-end"}
    assert client.post("/api/notifications", headers=staff_headers, json=body).status_code == 403
    grant(staff, "customers", view=True, edit=True)
    assert client.post("/api/notifications", headers=staff_headers, json=body).status_code == 201
    assert client.post("/api/notifications", headers=staff_headers, json={**body, "title": " "}).status_code == 400

    listing = client.get("/api/notifications", headers=headers).json()
    assert listing["unread_count"] == 1
    notification_id = listing["data"][0]["id"]

    assert client.get("/api/notifications", headers=headers, params={"user_id": staff.id}).status_code == 403
    assert client.get("/api/notifications", headers=staff_headers,
                      params={"user_id": customer.id}).json()["data"][0]["id"] == notification_id

    assert client.patch(f"/api/notifications/{notification_id}/read", headers=staff_headers).status_code == 404
    assert client.patch(f"/api/notifications/{notification_id}/read", headers=headers).json()["data"]["is_read"] is True

    session.add(Notification(user_id=customer.id, title="x", message="y"))
    session.commit()
    assert client.patch("/api/notifications/read-all", headers=headers).json()["data"] == {"updated": 1}


def test_customers_and_dashboard(client, make_user, auth_headers, grant, make_product, make_order):
    customer = make_user()
    product = make_product(price=30.0)
    make_order(customer, product, quantity=2, order_number="ORD-1", status=OrderStatus.DELIVERED)
    make_order(customer, product, order_number="ORD-2")

    staff = make_user(role=Role.PERSONNEL)
    headers = auth_headers(staff)
    assert client.get("/api/customers", headers=headers).status_code == 403
    grant(staff, "customers", view=True)
    grant(staff, "dashboard", view=True)

    customers = client.get("/api/customers", headers=headers).json()["data"]
    assert [(row["id"], row["order_count"], row["total_spent"]) for row in customers] == [(customer.id, 2, 90.0)]
    detail = client.get(f"/api/customers/{customer.id}", headers=headers).json()["data"]
    assert len(detail["orders"]) == 2
    assert client.get(f"/api/customers/{staff.id}", headers=headers).status_code == 404

    stats = client.get("/api/dashboard/stats", headers=headers).json()["data"]
    assert stats["revenue"] == 60.0
    assert stats["total_orders"] == 2
    assert stats["pending_orders"] == 1
    assert stats["total_customers"] == 1
    assert stats["top_products"][0]["sold"] == 3
