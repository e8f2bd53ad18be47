import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from app.database.connection import Base
from app.models.category import Category
from app.models.order import Order, OrderItem  # noqa: F401
from app.models.product import Product
from app.models.user import User, RefreshToken  # noqa: F401
from app.core.security import get_password_hash

TEST_DB_URL = "sqlite:///:memory:"

engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite defers BEGIN on its own, which breaks SAVEPOINT nesting; take over
# transaction control so each test runs inside one real outer transaction.
@event.listens_for(engine, "connect")
def _disable_pysqlite_autobegin(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture(scope="session", autouse=True)
def create_test_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    # Services commit and roll back on their own; each of those becomes a
    # SAVEPOINT inside the outer transaction, which is discarded afterwards.
    connection = engine.connect()
    trans = connection.begin()
    session = TestingSessionLocal(bind=connection, join_transaction_mode="create_savepoint")
    try:
        yield session
    finally:
        session.close()
        trans.rollback()
        connection.close()


def make_user(db, username="buyer", role="user", password="secret"):
    user = User(
        username=username,
        email=f"{username}@example.com",
        hashed_password=get_password_hash(password),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_category(db, name="General", parent=None):
    category = Category(name=name, parent_id=parent.id if parent else None)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def make_product(
    db,
    category,
    name="Widget",
    price="100.00",
    stock=10,
    discount=None,
    window=None,
):
    now = datetime.utcnow()
    start, end = window or (None, None)
    if discount is not None and window is None:
        start, end = now - timedelta(days=1), now + timedelta(days=1)
    product = Product(
        name=name,
        description=f"{name} description",
        price=Decimal(price),
        stock=stock,
        image_url=f"https://img.example.com/{name.lower()}.png",
        category_id=category.id,
        discount_percentage=Decimal(str(discount)) if discount is not None else None,
        discount_start_date=start,
        discount_end_date=end,
        created_at=now,
        updated_at=now,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture()
def buyer(db):
    return make_user(db, "buyer")


@pytest.fixture()
def admin(db):
    return make_user(db, "admin", role="admin")


@pytest.fixture()
def electronics(db):
    return make_category(db, "Electronics")
