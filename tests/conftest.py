from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine, select
from sqlmodel.pool import StaticPool

from storefront.auth import create_session, get_password_hash
from storefront.database import get_session
from storefront.main import app
from storefront.models.catalog import Category, Product
from storefront.models.order import Order, OrderItem
from storefront.models.user import Permission, Role, User, UserPermission, UserSession
from storefront.setup import seed_permissions

PASSWORD = "correct-horse"


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine, expire_on_commit=False) as session:
        seed_permissions(session)
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app, raise_server_exceptions=False)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session: Session):
    counter = {"n": 0}

    def _make_user(role: Role = Role.CUSTOMER, email: str | None = None, phone: str | None = None,
                   password: str | None = PASSWORD) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            name=f"User {counter['n']}",
            phone=phone,
            role=role,
            hashed_password=get_password_hash(password) if password else None,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def auth_headers(session: Session):
    def _auth_headers(user: User) -> dict:
        user_session = create_session(session, user)
        return {"Authorization": f"Bearer {user_session.token}"}

    return _auth_headers


@pytest.fixture
def grant(session: Session):
    def _grant(user: User, category: str, view=False, create=False, edit=False, delete=False) -> UserPermission:
        permission = session.exec(select(Permission).where(Permission.category == category)).one()
        row = UserPermission(
            user_id=user.id,
            permission_id=permission.id,
            can_view=view,
            can_create=create,
            can_edit=edit,
            can_delete=delete,
        )
        session.add(row)
        session.commit()
        return row

    return _grant


@pytest.fixture
def expired_headers(session: Session):
    def _expired_headers(user: User) -> dict:
        user_session = UserSession(
            token="expired-token",
            user_id=user.id,
            expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        )
        session.add(user_session)
        session.commit()
        return {"Authorization": "Bearer expired-token"}

    return _expired_headers


@pytest.fixture
def category(session: Session) -> Category:
    category = Category(name="Pagnes", slug="pagnes")
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


@pytest.fixture
def make_product(session: Session, category: Category):
    counter = {"n": 0}

    def _make_product(price: float = 25.0, stock: int = 10, **kwargs) -> Product:
        counter["n"] += 1
        product = Product(
            name=kwargs.pop("name", f"Product {counter['n']}"),
            slug=kwargs.pop("slug", f"product-{counter['n']}"),
            price=price,
            stock=stock,
            category_id=category.id,
            **kwargs,
        )
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    return _make_product


@pytest.fixture
def make_order(session: Session):
    def _make_order(user: User, product: Product, quantity: int = 1, phone: str = "+225 01 02 03 04 05",
                    order_number: str = "ORD-123", **kwargs) -> Order:
        order = Order(
            order_number=order_number,
            user_id=user.id,
            subtotal=product.price * quantity,
            total=product.price * quantity,
            shipping_address={"name": user.name, "phone": phone, "address": "Rue 12", "city": "Abidjan"},
            **kwargs,
        )
        session.add(order)
        session.flush()
        session.add(OrderItem(order_id=order.id, product_id=product.id, quantity=quantity, price=product.price))
        session.commit()
        session.refresh(order)
        return order

    return _make_order


@pytest.fixture
def foreign_keys(session: Session):
    """Make SQLite enforce foreign keys the way a production database does."""
    session.connection().exec_driver_sql("PRAGMA foreign_keys=ON")
