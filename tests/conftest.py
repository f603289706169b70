from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update

from storefront.core.config import Settings
from storefront.db.session import Database
from storefront.main import create_app
from storefront.models.user import Account
from storefront.services.auth_flow import AuthFlowController
from storefront.services.email import DeliveryResult, DeliveryStatus, LoggingEmailDispatcher


class RecordingEmailDispatcher:
    """Collects outgoing mail; can be told to fail."""

    def __init__(self, status: DeliveryStatus = DeliveryStatus.sent, raises: Exception | None = None):
        self.status = status
        self.raises = raises
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to_email: str, subject: str, body: str) -> DeliveryResult:
        if self.raises is not None:
            raise self.raises
        self.sent.append((to_email, subject, body))
        return DeliveryResult(self.status)

    async def check(self) -> bool:
        return True

    @property
    def last_token(self) -> str:
        body = self.sent[-1][2]
        link = next(word for word in body.split() if "token=" in word)
        return token_from_link(link)


def token_from_link(link: str) -> str:
    return parse_qs(urlsplit(link).query)["token"][0]


async def expire_token(database: Database, username: str) -> None:
    async with database.session() as db:
        await db.execute(
            update(Account)
            .where(Account.username == username)
            .values(verification_expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
        )
        await db.commit()


@pytest.fixture
def make_settings(tmp_path):
    def _make(**overrides) -> Settings:
        values = dict(
            DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'store.db'}",
            PG_HOST=None,
            APP_BASE_URL="http://shop.test",
            EMAIL_VERIFICATION_ENABLED=True,
            EMAIL_VERIFY_TTL_MINUTES=60,
            BCRYPT_ROUNDS=4,
            DB_INIT_ON_STARTUP=False,
        )
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings)
    yield db
    await db.dispose()


@pytest.fixture
def mailer() -> RecordingEmailDispatcher:
    return RecordingEmailDispatcher()


@pytest.fixture
def flow(settings, database, mailer) -> AuthFlowController:
    return AuthFlowController(settings, database, mailer)


@pytest_asyncio.fixture
async def make_client(make_settings):
    apps = []
    clients = []

    async def _make(dispatcher=None, **overrides) -> AsyncClient:
        app = create_app(make_settings(**overrides), dispatcher or LoggingEmailDispatcher())
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")
        apps.append(app)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()
    for app in apps:
        await app.state.database.dispose()


@pytest_asyncio.fixture
async def client(make_client) -> AsyncClient:
    return await make_client()
