from sqlmodel import select

from storefront.models.catalog import Category, Product
from storefront.models.customer import CartItem
from storefront.models.user import Role


def test_product_listing_filters_and_pagination(client, make_product):
    make_product(name="Pagne wax", price=20, stock=0, is_new=True)
    make_product(name="Boubou", price=60, stock=2, is_featured=True)
    make_product(name="Sac", price=35, stock=1)
    make_product(name="Caché", price=10, is_active=False)

    body = client.get("/api/products", params={"sort_by": "price", "sort_order": "asc"}).json()
    assert [p["name"] for p in body["data"]] == ["Pagne wax", "Sac", "Boubou"]
    assert body["pagination"] == {"page": 1, "limit": 20, "total": 3, "total_pages": 1}

    assert [p["name"] for p in client.get("/api/products", params={"in_stock": True, "sort_by": "name",
                                                                    "sort_order": "asc"}).json()["data"]] == ["Boubou", "Sac"]
    assert [p["name"] for p in client.get("/api/products", params={"search": "wax"}).json()["data"]] == ["Pagne wax"]
    assert [p["name"] for p in client.get("/api/products", params={"min_price": 30, "max_price": 50}).json()["data"]] == ["Sac"]
    assert [p["name"] for p in client.get("/api/products", params={"is_featured": True}).json()["data"]] == ["Boubou"]

    page = client.get("/api/products", params={"limit": 2, "page": 2}).json()
    assert len(page["data"]) == 1
    assert page["pagination"]["total_pages"] == 2


def test_product_by_slug_includes_category(client, make_product, category):
    product = make_product(slug="boubou-bleu")
    body = client.get("/api/products/boubou-bleu").json()
    assert body["data"]["id"] == product.id
    assert body["data"]["category"]["slug"] == category.slug
    assert client.get("/api/products/unknown").status_code == 404


def test_product_conflicts(client, make_user, auth_headers, make_product, category):
    headers = auth_headers(make_user(role=Role.ADMIN))
    make_product(slug="sac", sku="SKU-1")
    payload = {"name": "Sac", "price": 10, "categoryId": category.id}
    assert client.post("/api/products", headers=headers, json=payload).status_code == 409
    assert client.post("/api/products", headers=headers,
                       json={**payload, "slug": "sac-2", "sku": "SKU-1"}).status_code == 409
    assert client.post("/api/products", headers=headers,
                       json={**payload, "slug": "sac-3", "categoryId": 9999}).status_code == 404


def test_product_update(client, make_user, auth_headers, make_product):
    product = make_product(price=10)
    headers = auth_headers(make_user(role=Role.ADMIN))
    response = client.put(f"/api/products/{product.id}", headers=headers, json={"price": 12.5, "isFeatured": True})
    assert response.status_code == 200
    assert product.price == 12.5
    assert product.is_featured is True


def test_product_delete_removes_cart_lines(client, session, make_user, auth_headers, make_product):
    customer = make_user()
    product = make_product()
    session.add(CartItem(user_id=customer.id, product_id=product.id))
    session.commit()

    response = client.delete(f"/api/products/{product.id}", headers=auth_headers(make_user(role=Role.ADMIN)))
    assert response.status_code == 200
    assert session.exec(select(Product)).first() is None
    assert session.exec(select(CartItem)).first() is None


def test_category_crud(client, session, make_user, auth_headers, make_product):
    headers = auth_headers(make_user(role=Role.ADMIN))
    response = client.post("/api/categories", headers=headers, json={"name": "Bijoux & Accessoires"})
    assert response.status_code == 201
    created = response.json()["data"]
    assert created["slug"] == "bijoux-accessoires"
    assert client.post("/api/categories", headers=headers, json={"name": "Bijoux accessoires"}).status_code == 409

    child = client.post("/api/categories", headers=headers,
                        json={"name": "Colliers", "parentId": created["id"]}).json()["data"]
    roots = client.get("/api/categories", params={"parent_only": True}).json()["data"]
    assert child["id"] not in [row["id"] for row in roots]

    response = client.put(f"/api/categories/{created['id']}", headers=headers, json={"description": "Brillant"})
    assert response.json()["data"]["description"] == "Brillant"

    assert client.delete(f"/api/categories/{created['id']}", headers=headers).status_code == 200
    assert session.get(Category, child["id"]).parent_id is None


def test_category_with_products_cannot_be_deleted(client, make_user, auth_headers, make_product, category):
    make_product()
    response = client.delete(f"/api/categories/{category.id}", headers=auth_headers(make_user(role=Role.ADMIN)))
    assert response.status_code == 400
    body = client.get(f"/api/categories/{category.slug}").json()
    assert body["data"]["product_count"] == 1


def test_product_update_rejects_null_required_fields(client, make_user, auth_headers, make_product):
    product = make_product(name="Boubou", price=40)
    headers = auth_headers(make_user(role=Role.ADMIN))
    response = client.put(f"/api/products/{product.id}", headers=headers, json={"name": None, "price": None})
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert client.put(f"/api/products/{product.id}", headers=headers, json={"categoryId": None}).status_code == 400
    assert product.name == "Boubou"
    assert product.price == 40

    # Nullable columns can still be cleared
    response = client.put(f"/api/products/{product.id}", headers=headers, json={"discountPrice": None})
    assert response.status_code == 200


def test_category_update_rejects_null_name(client, make_user, auth_headers, category):
    headers = auth_headers(make_user(role=Role.ADMIN))
    assert client.put(f"/api/categories/{category.id}", headers=headers, json={"name": None}).status_code == 400
    assert client.put(f"/api/categories/{category.id}", headers=headers, json={"slug": None}).status_code == 400
    assert category.name == "Pagnes"
