"""
Pytest fixtures for session gateway tests.
"""

import asyncio

import pytest
from sqlalchemy.orm import sessionmaker

from basecore.db import create_db_engine
from session_gateway.persistence.credentials import CredentialStore
from session_gateway.persistence.gateway import PersistenceGateway
from session_gateway.persistence.models import GatewayBase
from session_gateway.session.session import Session
from session_gateway.sync.engine import SyncEngine
from session_gateway.transport.base import RosterEntry
from session_gateway.transport.stub import StubTransport


@pytest.fixture
def sample_tenant_id():
    return "t1"


@pytest.fixture
def db_engine(tmp_path):
    """File-backed SQLite database with the gateway tables."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'gateway.db'}")
    GatewayBase.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def persistence(db_engine):
    return PersistenceGateway(sessionmaker(autocommit=False, autoflush=False, bind=db_engine))


@pytest.fixture
def sessions_dir(tmp_path):
    path = tmp_path / "sessions"
    path.mkdir()
    return path


@pytest.fixture
def credentials(sessions_dir):
    return CredentialStore(sessions_dir, max_attempts=3, backoff_seconds=0)


@pytest.fixture
def sample_roster():
    """One private contact and one group."""
    return [
        RosterEntry(jid="1@s.whatsapp.net", name="A"),
        RosterEntry(jid="120363000000000000@g.us", name="G"),
    ]


@pytest.fixture
def make_session(persistence, credentials, sessions_dir):
    """
    Build a Session around a StubTransport.

    Returns (session, transport). Closed sessions are appended to
    session.closed_calls by the on_closed hook.
    """

    def _make(tenant_id="t1", with_sync=True, transport_cls=StubTransport, **transport_kwargs):
        transport_kwargs.setdefault("credentials_dir", sessions_dir / tenant_id)
        transport = transport_cls(tenant_id, **transport_kwargs)
        closed_calls = []

        async def on_closed(session):
            closed_calls.append(session.state)

        session = Session(
            tenant_id,
            transport=transport,
            persistence=persistence,
            sync_engine=SyncEngine(persistence) if with_sync else None,
            credentials=credentials,
            on_closed=on_closed,
        )
        session.closed_calls = closed_calls
        return session, transport

    return _make


@pytest.fixture
def eventually():
    """Wait until a condition holds (polls the event loop)."""

    async def _eventually(condition, timeout=2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not condition():
            if loop.time() > deadline:
                raise AssertionError("Condition not met in time")
            await asyncio.sleep(0.01)

    return _eventually
