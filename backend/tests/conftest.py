"""
Test Configuration — Fixtures for async DB, test client, and mock data.

Each test gets its own in-memory SQLite database (aiosqlite) with the schema
built from the models, so commits inside app code are safe.
"""

import uuid
from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from api.deps import get_current_user, get_db, get_tenant_db
from api.main import app
from db.session import Base

# In-memory SQLite, one connection shared by the whole test (no RLS, no set_config)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ORGANIZATION_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
USER_ID = "user-test-owner"


@pytest.fixture
async def test_engine():
    """Create a fresh database engine and build all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_user():
    """Mock authenticated user."""
    return {
        "sub": USER_ID,
        "email": "owner@peintures-test.fr",
    }


@pytest.fixture
async def organization(test_db, mock_user):
    """The test tenant, owned by mock_user."""
    from db.models import Organization, UserOrganization

    org = Organization(organization_id=ORGANIZATION_ID, name="Peintures Test", slug="peintures-test")
    test_db.add(org)
    await test_db.flush()
    test_db.add(
        UserOrganization(
            user_id=mock_user["sub"],
            organization_id=ORGANIZATION_ID,
            email=mock_user["email"],
            role="owner",
            is_default=True,
        )
    )
    await test_db.commit()
    return org


def _override_dependencies(test_db, mock_user):
    async def override_get_db():
        yield test_db

    def override_get_current_user():
        return mock_user

    async def override_get_tenant_db():
        """Skip set_config (SQLite doesn't support it), return session directly."""
        return test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_tenant_db] = override_get_tenant_db


@pytest.fixture
async def client(test_db, mock_user, organization):
    """Async test client acting as the owner of the test organization."""
    _override_dependencies(test_db, mock_user)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Organization-Id": str(ORGANIZATION_ID)},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def new_user_client(test_db, mock_user):
    """Async test client for a user without any organization yet."""
    _override_dependencies(test_db, mock_user)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def seeded_db(test_db, organization):
    """
    Seed a small paint catalog:

      Peintures (root)
        Intérieur       -> Blanc mat 10L (stock 40)
        Extérieur       -> Façade 15L (stock 5)
      Outillage (root)  -> Rouleau 180mm (stock 0)
      (uncategorized)   -> Diluant 1L (stock 12)

    plus one technician.
    """
    from db.models import Category, Product, Technician

    peintures = Category(organization_id=ORGANIZATION_ID, name="Peintures")
    outillage = Category(organization_id=ORGANIZATION_ID, name="Outillage")
    test_db.add_all([peintures, outillage])
    await test_db.flush()

    interieur = Category(organization_id=ORGANIZATION_ID, name="Intérieur", parent_id=peintures.category_id)
    exterieur = Category(organization_id=ORGANIZATION_ID, name="Extérieur", parent_id=peintures.category_id)
    test_db.add_all([interieur, exterieur])
    await test_db.flush()

    blanc = Product(
        organization_id=ORGANIZATION_ID,
        name="Blanc mat 10L",
        sku="BLAN-000001",
        price=49.9,
        stock_current=40,
        stock_min=10,
        stock_max=100,
        category_id=interieur.category_id,
        created_at=datetime(2026, 1, 1, 9, 0),
    )
    facade = Product(
        organization_id=ORGANIZATION_ID,
        name="Façade 15L",
        sku="FACA-000002",
        price=89.0,
        stock_current=5,
        stock_min=10,
        stock_max=50,
        category_id=exterieur.category_id,
        created_at=datetime(2026, 1, 2, 9, 0),
    )
    rouleau = Product(
        organization_id=ORGANIZATION_ID,
        name="Rouleau 180mm",
        sku="ROUL-000003",
        price=7.5,
        stock_current=0,
        stock_min=5,
        stock_max=30,
        category_id=outillage.category_id,
        created_at=datetime(2026, 1, 3, 9, 0),
    )
    diluant = Product(
        organization_id=ORGANIZATION_ID,
        name="Diluant 1L",
        sku="DILU-000004",
        price=None,
        stock_current=12,
        stock_min=2,
        stock_max=12,
        created_at=datetime(2026, 1, 4, 9, 0),
    )
    test_db.add_all([blanc, facade, rouleau, diluant])

    technician = Technician(
        organization_id=ORGANIZATION_ID,
        first_name="Julie",
        last_name="Martin",
        email="julie.martin@peintures-test.fr",
        city="Lyon",
    )
    test_db.add(technician)
    await test_db.commit()

    return {
        "organization_id": ORGANIZATION_ID,
        "categories": {
            "peintures": peintures,
            "outillage": outillage,
            "interieur": interieur,
            "exterieur": exterieur,
        },
        "products": {
            "blanc": blanc,
            "facade": facade,
            "rouleau": rouleau,
            "diluant": diluant,
        },
        "technician": technician,
    }
