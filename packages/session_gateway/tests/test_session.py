"""
Tests for the session state machine.
"""

import pytest

from session_gateway.errors import (
    AuthFailure,
    LogoutFailed,
    NotReady,
    PeerUnregistered,
    QrTimeout,
)
from session_gateway.session.state import (
    TERMINAL_STATES,
    SessionCommand,
    SessionState,
    next_state,
)
from session_gateway.transport.base import TransportEvent, TransportEventType
from session_gateway.transport.stub import StubTransport


class SilentTransport(StubTransport):
    """Never produces a QR code."""

    async def initialize(self) -> None:
        pass


def client_record(persistence, tenant_id):
    return persistence.query(lambda repo: repo.get_client(tenant_id))


def message_logs(persistence, tenant_id):
    return persistence.query(lambda repo: repo.list_message_logs(tenant_id))


async def make_ready(session, transport, eventually):
    await session.start()
    await session.wait_for_qr(1.0)
    transport.pair()
    await eventually(lambda: session.is_ready)
    await session.wait_background()


class TestTransitionTable:
    """Tests for the transition table."""

    def test_qr_moves_to_awaiting_scan(self):
        assert next_state(SessionState.INITIALIZING, TransportEventType.QR) == SessionState.AWAITING_SCAN
        assert next_state(SessionState.AWAITING_SCAN, TransportEventType.QR) == SessionState.AWAITING_SCAN

    def test_ready_only_after_authenticated(self):
        assert next_state(SessionState.AUTHENTICATED, TransportEventType.READY) == SessionState.READY
        assert next_state(SessionState.INITIALIZING, TransportEventType.READY) is None
        assert next_state(SessionState.AWAITING_SCAN, TransportEventType.READY) is None

    def test_logout_only_from_ready(self):
        assert next_state(SessionState.READY, SessionCommand.LOGOUT) == SessionState.LOGGED_OUT
        assert next_state(SessionState.AWAITING_SCAN, SessionCommand.LOGOUT) is None

    def test_message_only_while_ready(self):
        assert next_state(SessionState.READY, TransportEventType.MESSAGE) == SessionState.READY
        assert next_state(SessionState.AUTHENTICATED, TransportEventType.MESSAGE) is None

    def test_terminal_states_accept_nothing(self):
        triggers = list(TransportEventType) + list(SessionCommand)
        for state in TERMINAL_STATES:
            for trigger in triggers:
                assert next_state(state, trigger) is None

    def test_auth_failure_from_every_live_state(self):
        for state in SessionState:
            if not state.terminal:
                assert next_state(state, TransportEventType.AUTH_FAILURE) == SessionState.AUTH_FAILED


class TestSessionLifecycle:
    """Tests for the session lifecycle."""

    @pytest.mark.asyncio
    async def test_qr_then_ready(self, make_session, persistence, eventually):
        """Test pairing persists the QR code and a ready client record."""
        session, transport = make_session("t1")

        await session.start()
        qr = await session.wait_for_qr(1.0)

        assert qr.startswith("stub-qr:t1:")
        assert session.state == SessionState.AWAITING_SCAN

        transport.pair()
        await eventually(lambda: session.is_ready)
        await session.wait_background()

        record = client_record(persistence, "t1")
        assert record.status == "ready"
        assert record.phone_number == transport.phone_number
        assert session.phone_number == transport.phone_number
        assert len(persistence.query(lambda repo: repo.list_qr_codes("t1"))) == 1

    @pytest.mark.asyncio
    async def test_qr_refresh_is_persisted(self, make_session, persistence, eventually):
        """Test a refreshed QR code is stored but the state does not change."""
        session, transport = make_session("t1")

        await session.start()
        await session.wait_for_qr(1.0)
        transport.refresh_qr()

        await eventually(lambda: len(persistence.query(lambda repo: repo.list_qr_codes("t1"))) == 2)
        assert session.state == SessionState.AWAITING_SCAN

    @pytest.mark.asyncio
    async def test_restored_credentials_skip_qr(self, make_session, sessions_dir, eventually):
        """Test a second session for a paired tenant authenticates without a QR code."""
        first, first_transport = make_session("t1")
        await make_ready(first, first_transport, eventually)
        await first.shutdown()

        session, transport = make_session("t1")
        await session.start()

        assert await session.wait_for_qr(1.0) is None
        await eventually(lambda: session.is_ready)
        assert transport.qr_count == 0

    @pytest.mark.asyncio
    async def test_auth_failure_fails_qr_waiter(self, make_session, persistence):
        """Test an auth failure before any QR code reaches the waiting caller."""
        session, transport = make_session("t1", with_sync=False, transport_cls=SilentTransport)

        await session.start()
        transport.fail_auth("invalid session")

        with pytest.raises(AuthFailure):
            await session.wait_for_qr(1.0)

        await session.wait_closed()
        assert session.state == SessionState.AUTH_FAILED
        assert session.closed_calls == [SessionState.AUTH_FAILED]
        assert client_record(persistence, "t1") is None

    @pytest.mark.asyncio
    async def test_qr_timeout_aborts_session(self, make_session):
        """Test the caller gets QrTimeout and the session ends as an auth failure."""
        session, _ = make_session("t1", with_sync=False, transport_cls=SilentTransport)

        await session.start()

        with pytest.raises(QrTimeout):
            await session.wait_for_qr(0.05)

        assert session.state == SessionState.AUTH_FAILED
        assert session.closed

    @pytest.mark.asyncio
    async def test_disconnect_from_ready(self, make_session, persistence, eventually):
        """Test a dropped Ready session marks the client disconnected and closes."""
        session, transport = make_session("t1")
        await make_ready(session, transport, eventually)

        transport.drop("NAVIGATION")
        await session.wait_closed()

        assert session.state == SessionState.DISCONNECTED
        assert session.closed_calls == [SessionState.DISCONNECTED]
        assert client_record(persistence, "t1").status == "disconnected"

    @pytest.mark.asyncio
    async def test_terminal_session_ignores_events(self, make_session, eventually):
        """Test no event is accepted once the session is terminal."""
        session, transport = make_session("t1")
        await make_ready(session, transport, eventually)
        transport.drop()
        await session.wait_closed()

        accepted = await session.handle_event(
            TransportEvent(type=TransportEventType.READY, data={"phone_number": "1"})
        )

        assert accepted is False
        assert session.state == SessionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_out_of_order_event_is_ignored(self, make_session):
        """Test ready before authenticated is ignored."""
        session, _ = make_session("t1")

        accepted = await session.handle_event(
            TransportEvent(type=TransportEventType.READY, data={"phone_number": "1"})
        )

        assert accepted is False
        assert session.state == SessionState.INITIALIZING

    @pytest.mark.asyncio
    async def test_shutdown_marks_ready_client_disconnected(self, make_session, persistence, eventually):
        session, transport = make_session("t1")
        await make_ready(session, transport, eventually)

        await session.shutdown()

        assert session.state == SessionState.DISCONNECTED
        assert client_record(persistence, "t1").status == "disconnected"
        assert transport.terminated


class TestSessionCommands:
    """Tests for commands against a session."""

    @pytest.mark.asyncio
    async def test_send_message_not_ready(self, make_session, persistence):
        """Test sending before Ready makes no transport call and logs nothing."""
        session, transport = make_session("t1")
        await session.start()
        await session.wait_for_qr(1.0)

        with pytest.raises(NotReady):
            await session.send_message("15551234", "hi")

        assert transport.sent_messages == []
        assert message_logs(persistence, "t1") == []

    @pytest.mark.asyncio
    async def test_send_message_logs_once(self, make_session, persistence, eventually):
        """Test a sent message reaches the transport and is logged."""
        session, transport = make_session("t1")
        await make_ready(session, transport, eventually)

        ack = await session.send_message("15551234", "hi")

        assert ack.message_id == transport.sent_messages[0]["message_id"]
        assert transport.sent_messages[0]["to"] == "15551234"

        logs = message_logs(persistence, "t1")
        assert len(logs) == 1
        assert (logs[0].client_id, logs[0].number, logs[0].message) == ("t1", "15551234", "hi")

    @pytest.mark.asyncio
    async def test_send_to_unregistered_peer(self, make_session, persistence, eventually):
        session, transport = make_session("t1", unregistered={"15550000"})
        await make_ready(session, transport, eventually)

        with pytest.raises(PeerUnregistered):
            await session.send_message("15550000", "hi")

        assert message_logs(persistence, "t1") == []

    @pytest.mark.asyncio
    async def test_send_media_logs_caption_or_mime(self, make_session, persistence, eventually):
        session, transport = make_session("t1")
        await make_ready(session, transport, eventually)

        await session.send_media("15551234", b"\x89PNG", "image/png", caption="look")
        await session.send_media("15551234", b"%PDF", "application/pdf")

        bodies = {log.message for log in message_logs(persistence, "t1")}
        assert bodies == {"look", "[application/pdf]"}
        assert transport.sent_messages[1]["size"] == 4

    @pytest.mark.asyncio
    async def test_inbound_message_logged_with_sender(self, make_session, persistence, eventually):
        """Test inbound messages are logged under the tenant with the sender's number."""
        session, transport = make_session("t1")
        await make_ready(session, transport, eventually)

        transport.receive("5511888888888", "hello")
        await eventually(lambda: len(message_logs(persistence, "t1")) == 1)

        # Same text from the same peer counts as already logged
        transport.receive("5511888888888", "hello")
        transport.receive("5511888888888", "bye")
        await eventually(lambda: len(message_logs(persistence, "t1")) == 2)
        await session.wait_background()

        logs = message_logs(persistence, "t1")
        assert sorted(log.message for log in logs) == ["bye", "hello"]
        assert {log.number for log in logs} == {"5511888888888"}

    @pytest.mark.asyncio
    async def test_set_status(self, make_session, persistence, eventually):
        session, transport = make_session("t1")
        await make_ready(session, transport, eventually)

        await session.set_status("Out of office")

        assert transport.status_text == "Out of office"
        assert session.status_message == "Out of office"
        assert client_record(persistence, "t1").status_message == "Out of office"

    @pytest.mark.asyncio
    async def test_logout(self, make_session, persistence, sessions_dir, eventually):
        """Test logout marks the client logged out and removes credentials."""
        session, transport = make_session("t1")
        await make_ready(session, transport, eventually)
        assert (sessions_dir / "t1").exists()

        await session.logout()
        await session.wait_background()

        assert session.state == SessionState.LOGGED_OUT
        assert session.closed_calls == [SessionState.LOGGED_OUT]
        assert client_record(persistence, "t1").status == "logged_out"
        assert not (sessions_dir / "t1").exists()

    @pytest.mark.asyncio
    async def test_logout_failure_keeps_session_ready(self, make_session, persistence, eventually):
        session, transport = make_session("t1", fail_logout=True)
        await make_ready(session, transport, eventually)

        with pytest.raises(LogoutFailed):
            await session.logout()

        assert session.is_ready
        assert client_record(persistence, "t1").status == "ready"
