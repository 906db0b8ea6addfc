import base64
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("CIRCLE_API_KEY", "test-circle-key")

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from wallet_ledger.core.deps import get_circle_client
from wallet_ledger.database import Base, get_db
from wallet_ledger.main import app
from wallet_ledger.models.profile import Profile
from wallet_ledger.models.wallet import Wallet

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db_session():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
    async with SessionLocal() as session:
        yield session
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def signing_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def raw_public_key(signing_key):
    """Public key in the bare base64 DER form Circle serves it."""
    der = signing_key.public_key().public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return base64.b64encode(der).decode()


@pytest.fixture
def sign(signing_key):
    def _sign(body: bytes) -> str:
        return base64.b64encode(signing_key.sign(body, ec.ECDSA(hashes.SHA256()))).decode()
    return _sign


@pytest.fixture
def circle(raw_public_key):
    mock_circle = MagicMock()
    mock_circle.get_notification_public_key = AsyncMock(return_value=raw_public_key)
    mock_circle.get_wallet_balances = AsyncMock(
        return_value=[{"token": {"symbol": "USDC"}, "amount": "25.5"}]
    )
    mock_circle.list_transfers = AsyncMock(return_value={"transfers": [], "hasMore": False})
    mock_circle.get_transfer = AsyncMock(return_value=None)
    mock_circle.find_transfers_by_hash = AsyncMock(return_value=[])
    mock_circle.get_transaction_receipt = AsyncMock(return_value=None)
    return mock_circle


@pytest_asyncio.fixture
async def client(db_session, circle):
    async def override_get_db():
        yield db_session
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_circle_client] = lambda: circle
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_wallet(db_session):
    async def _make(address, blockchain="POLYGON", auth_user_id=None, **fields):
        profile_id = fields.pop("profile_id", None)
        if profile_id is None:
            profile = Profile(auth_user_id=auth_user_id or os.urandom(8).hex(), email="user@example.com")
            db_session.add(profile)
            await db_session.flush()
            profile_id = profile.id
        wallet = Wallet(
            profile_id=profile_id,
            blockchain=blockchain,
            wallet_address=address,
            circle_wallet_id=fields.pop("circle_wallet_id", address),
            **fields,
        )
        db_session.add(wallet)
        await db_session.commit()
        return wallet
    return _make
