import base64
import os

# Settings are read at import time; configure before anything imports config.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["TOKEN_ENCRYPTION_KEY"] = base64.b64encode(b"k" * 32).decode("ascii")
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["CRON_SECRET"] = "test-cron-secret-0123456789abcdef"
os.environ["ENVIRONMENT"] = "development"
os.environ["SYNC_BATCH_DELAY_SECONDS"] = "0"

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from database import Base  # noqa: E402
import models  # noqa: E402,F401
from models.channel import Channel  # noqa: E402
from models.connection import Connection  # noqa: E402
from services.crypto import encrypt_token  # noqa: E402
from services.snapshot_store import SnapshotStore  # noqa: E402


FIXED_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "channel_sync.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest.fixture
def store(session_maker):
    return SnapshotStore(session_maker)


async def add_client_connection(
    session_maker,
    youtube_channel_id: str,
    name: str,
    expires_at: datetime = FIXED_NOW + timedelta(hours=1),
    access_token: str = "access-token",
    refresh_token: str = "refresh-token",
    reporting_job_id: str = None,
    with_channel: bool = True,
    created_at: datetime = None,
):
    """Seed a connection (and its client channel) the way the OAuth grant would."""
    async with session_maker() as session:
        channel = None
        if with_channel:
            channel = Channel(youtube_channel_id=youtube_channel_id, name=name, is_client=True)
            session.add(channel)
        connection = Connection(
            youtube_channel_id=youtube_channel_id,
            youtube_channel_title=name,
            access_token_encrypted=encrypt_token(access_token),
            refresh_token_encrypted=encrypt_token(refresh_token),
            token_expires_at=expires_at,
            reporting_job_id=reporting_job_id,
            is_active=True,
            created_at=created_at or FIXED_NOW,
        )
        session.add(connection)
        await session.commit()
        return connection, channel
