import os

os.environ.setdefault("JWT_SECRET", "test-secret-key")
os.environ.setdefault("DB_TYPE", "sqlite")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

import bioharvest.models  # noqa: F401
from bioharvest.core.db import Base, build_engine, build_sessionmaker, get_db
from bioharvest.core.security import create_access_token, hash_password
from bioharvest.models.course_models import Course, CourseSection
from bioharvest.models.order_models import Order
from bioharvest.models.promo_models import PromoCode, DiscountType, UNLIMITED
from bioharvest.models.user_models import User
from bioharvest.utils.datetime_utils import utcnow


async def persist(db, obj):
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    # the refresh opened a BEGIN IMMEDIATE transaction; end it so other sessions can write
    await db.commit()
    return obj


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    async def _make(role="student", name=None):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            name=name or f"{role.title()} {n}",
            email=f"{role}{n}@example.com",
            password_hash=hash_password("password123"),
            role=role,
            is_active=True,
        )
        return await persist(db, user)

    return _make


@pytest.fixture
async def student(make_user):
    return await make_user("student", name="Asha Verma")


@pytest.fixture
async def admin(make_user):
    return await make_user("admin")


@pytest.fixture
def make_promo(db):
    async def _make(code="SAVE10", **overrides):
        data = dict(
            code=code,
            name=f"{code} promo",
            discount_type=DiscountType.FIXED,
            discount_value=Decimal("10.00"),
            minimum_order_amount=Decimal("50.00"),
            max_usage=UNLIMITED,
            max_usage_per_user=1,
            current_usage=0,
            start_date=utcnow() - timedelta(days=1),
            end_date=utcnow() + timedelta(days=30),
            is_active=True,
        )
        data.update(overrides)
        promo = PromoCode(**data)
        return await persist(db, promo)

    return _make


@pytest.fixture
def make_course(db):
    async def _make(sections=5, **overrides):
        data = dict(
            title="Organic Farming Basics",
            description="Soil, compost and crop rotation.",
            category="organic",
            level="beginner",
            price=Decimal("0.00"),
            discount=0,
            is_free=True,
            instructor_name="Dr. Meera Rao",
            is_active=True,
            max_students=50,
            enrolled_students=0,
        )
        data.update(overrides)
        course = Course(**data)
        for i in range(sections):
            course.sections.append(CourseSection(title=f"Section {i + 1}", position=i))
        return await persist(db, course)

    return _make


@pytest.fixture
def make_order(db):
    async def _make(user, subtotal="100.00"):
        order = Order(
            user_id=user.id,
            items=[{"name": "Veg box", "price": subtotal, "quantity": 1}],
            subtotal=Decimal(subtotal),
            amount=Decimal(subtotal),
        )
        return await persist(db, order)

    return _make


def auth_headers(user) -> dict:
    token = create_access_token(
        {"sub": user.email, "user_id": user.id, "role": user.role},
        token_version=user.token_version,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(session_factory):
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def headers_for():
    return auth_headers
