"""
Tests for the Evolution API transport.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from session_gateway.errors import LogoutFailed, PeerUnregistered, SendFailed, TransportFailure
from session_gateway.transport.base import TransportEventType
from session_gateway.transport.evolution import EvolutionInstanceManager, EvolutionTransport
from session_gateway.transport.evolution.client import media_type_for
from session_gateway.transport.evolution.webhook import (
    extract_instance_name,
    extract_qr_code,
    normalize_event_name,
    parse_message,
    validate_api_key,
)
from session_gateway.transport.factory import TransportFactory, instance_name_for, tenant_for_instance


@pytest.fixture
def evolution_text_message_webhook():
    """Sample Evolution API webhook for a text message."""
    return {
        "event": "messages.upsert",
        "instance": "gw_t1",
        "data": {
            "key": {
                "id": "msg_123",
                "remoteJid": "5511888888888@s.whatsapp.net",
                "fromMe": False,
            },
            "message": {
                "conversation": "Bom dia",
            },
            "messageType": "conversation",
            "messageTimestamp": 1704067200,
        },
    }


@pytest.fixture
def instances():
    """Instance manager double."""
    manager = MagicMock(spec=EvolutionInstanceManager)
    manager.create_instance = AsyncMock(return_value={"qrcode": {"code": "2@first"}})
    manager.connect_instance = AsyncMock(return_value={"code": "2@second"})
    manager.fetch_instance = AsyncMock(return_value={"ownerJid": "5511999999999@s.whatsapp.net"})
    manager.logout_instance = AsyncMock()
    manager.delete_instance = AsyncMock(return_value=True)
    manager.request = AsyncMock(return_value={"key": {"id": "wamid_1"}})
    return manager


@pytest.fixture
def transport(instances):
    return EvolutionTransport("t1", instances=instances, instance_name="gw_t1", connect_timeout=60)


async def drain(transport, timeout=1.0):
    async def collect():
        return [event async for event in transport.events()]

    return await asyncio.wait_for(collect(), timeout)


class TestEvolutionWebhookParsing:
    """Tests for Evolution API webhook parsing utilities."""

    def test_extract_instance_name(self, evolution_text_message_webhook):
        assert extract_instance_name(evolution_text_message_webhook) == "gw_t1"
        assert extract_instance_name({}) is None

    def test_normalize_event_name(self):
        assert normalize_event_name("QRCODE_UPDATED") == "qrcode.updated"
        assert normalize_event_name("connection.update") == "connection.update"
        assert normalize_event_name(None) == ""

    def test_extract_qr_code(self):
        assert extract_qr_code({"qrcode": {"code": "2@abc", "base64": "..."}}) == "2@abc"
        assert extract_qr_code({"code": "2@def"}) == "2@def"
        assert extract_qr_code({}) is None

    def test_parse_text_message(self, evolution_text_message_webhook):
        msg = parse_message(evolution_text_message_webhook["data"])

        assert msg.message_id == "msg_123"
        assert msg.from_number == "5511888888888"
        assert msg.body == "Bom dia"

    def test_parse_group_message_uses_participant(self):
        msg = parse_message(
            {
                "key": {
                    "id": "msg_g",
                    "remoteJid": "120363000000000000@g.us",
                    "participant": "5511777777777@s.whatsapp.net",
                },
                "message": {"extendedTextMessage": {"text": "oi"}},
                "messageType": "extendedTextMessage",
            }
        )

        assert msg.from_number == "5511777777777"
        assert msg.body == "oi"

    def test_parse_skips_own_and_broadcast(self, evolution_text_message_webhook):
        data = evolution_text_message_webhook["data"]
        data["key"]["fromMe"] = True
        assert parse_message(data) is None

        assert parse_message({"key": {"remoteJid": "status@broadcast"}, "message": {}}) is None

    def test_parse_null_message_blocks(self):
        """Test null nested message blocks are treated as having no text."""
        key = {"id": "msg_n", "remoteJid": "5511888888888@s.whatsapp.net"}

        extended = {"key": key, "messageType": "extendedTextMessage", "message": {"extendedTextMessage": None}}
        image = {"key": key, "messageType": "imageMessage", "message": {"imageMessage": None}}

        assert parse_message(extended) is None
        assert parse_message(image) is None

    def test_validate_api_key(self):
        assert validate_api_key({"apikey": "test-key"}, "test-key") is True
        assert validate_api_key({"authorization": "Bearer test-key"}, "test-key") is True
        assert validate_api_key({"apikey": "test-key"}, "wrong-key") is False

    def test_media_type_for(self):
        assert media_type_for("image/jpeg") == "image"
        assert media_type_for("audio/ogg") == "audio"
        assert media_type_for("application/pdf") == "document"


class TestEvolutionTransport:
    """Tests for EvolutionTransport."""

    @pytest.mark.asyncio
    async def test_initialize_emits_qr(self, transport, instances):
        await transport.initialize()
        await transport.close()

        events = await drain(transport)
        assert [e.type for e in events] == [TransportEventType.QR]
        assert events[0].data["payload"] == "2@first"
        instances.create_instance.assert_awaited_once_with("gw_t1", webhook_url=None)

    @pytest.mark.asyncio
    async def test_initialize_reuses_existing_instance(self, transport, instances):
        """Test a 403 on create falls back to connect."""
        instances.create_instance.side_effect = TransportFailure("name in use", code="403")

        await transport.initialize()
        await transport.close()

        events = await drain(transport)
        assert events[0].data["payload"] == "2@second"

    @pytest.mark.asyncio
    async def test_initialize_propagates_other_errors(self, transport, instances):
        instances.create_instance.side_effect = TransportFailure("unauthorized", code="401")

        with pytest.raises(TransportFailure):
            await transport.initialize()

    @pytest.mark.asyncio
    async def test_connection_open(self, transport):
        """Test an open connection emits authenticated then ready with the phone."""
        await transport.initialize()
        await transport.handle_webhook(
            {
                "event": "CONNECTION_UPDATE",
                "instance": "gw_t1",
                "data": {"state": "open", "wuid": "5511999999999:3@s.whatsapp.net"},
            }
        )
        await transport.close()

        events = await drain(transport)
        assert [e.type for e in events] == [
            TransportEventType.QR,
            TransportEventType.AUTHENTICATED,
            TransportEventType.READY,
        ]
        assert events[2].data["phone_number"] == "5511999999999"
        assert transport.connected

    @pytest.mark.asyncio
    async def test_connection_open_without_wuid_fetches_owner(self, transport, instances):
        await transport.handle_webhook({"event": "connection.update", "data": {"state": "open"}})
        await transport.close()

        events = await drain(transport)
        assert events[-1].data["phone_number"] == "5511999999999"
        instances.fetch_instance.assert_awaited_once_with("gw_t1")

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, transport):
        """Test close with 401 before connecting is an auth failure."""
        await transport.handle_webhook(
            {"event": "connection.update", "data": {"state": "close", "statusReason": 401}}
        )

        events = await drain(transport)
        assert [e.type for e in events] == [TransportEventType.AUTH_FAILURE]

    @pytest.mark.asyncio
    async def test_restart_during_pairing_is_ignored(self, transport):
        await transport.handle_webhook(
            {"event": "connection.update", "data": {"state": "close", "statusReason": 515}}
        )

        assert not transport.terminated

    @pytest.mark.asyncio
    async def test_close_after_open_is_disconnect(self, transport):
        await transport.handle_webhook({"event": "connection.update", "data": {"state": "open", "wuid": "1@s.whatsapp.net"}})
        await transport.handle_webhook({"event": "connection.update", "data": {"state": "close", "statusReason": 428}})

        events = await drain(transport)
        assert events[-1].type == TransportEventType.DISCONNECTED

    @pytest.mark.asyncio
    async def test_inbound_message(self, transport, evolution_text_message_webhook):
        await transport.handle_webhook(evolution_text_message_webhook)
        await transport.close()

        events = await drain(transport)
        assert events[0].type == TransportEventType.MESSAGE
        assert events[0].data["message"].body == "Bom dia"

    @pytest.mark.asyncio
    async def test_watchdog_retries_then_fails(self, instances):
        """Test one fresh QR code is requested, then auth_failure."""
        transport = EvolutionTransport(
            "t1", instances=instances, instance_name="gw_t1", connect_timeout=0.01, max_qr_retries=1
        )

        await transport.initialize()
        events = await drain(transport)

        assert [e.type for e in events] == [
            TransportEventType.QR,
            TransportEventType.QR,
            TransportEventType.AUTH_FAILURE,
        ]
        assert events[1].data["payload"] == "2@second"

    @pytest.mark.asyncio
    async def test_send_message(self, transport, instances):
        ack = await transport.send_message("5511888888888", "hi")

        assert ack.message_id == "wamid_1"
        instances.request.assert_awaited_once_with(
            "POST", "/message/sendText/gw_t1", {"number": "5511888888888", "text": "hi"}
        )

    @pytest.mark.asyncio
    async def test_send_to_unregistered_number(self, transport, instances):
        instances.request.side_effect = TransportFailure(
            "API error: Bad Request",
            code="400",
            details={"response": {"message": [{"exists": False, "number": "5511000000000"}]}},
        )

        with pytest.raises(PeerUnregistered):
            await transport.send_message("5511000000000", "hi")

    @pytest.mark.asyncio
    async def test_send_failure(self, transport, instances):
        instances.request.side_effect = TransportFailure("API error", code="500", retryable=True)

        with pytest.raises(SendFailed) as exc_info:
            await transport.send_message("5511888888888", "hi")

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_send_media(self, transport, instances):
        await transport.send_media("5511888888888", b"abc", "image/png", caption="look", file_name="a.png")

        _, endpoint, payload = instances.request.await_args.args
        assert endpoint == "/message/sendMedia/gw_t1"
        assert payload["mediatype"] == "image"
        assert payload["media"] == "YWJj"
        assert payload["caption"] == "look"
        assert payload["fileName"] == "a.png"

    @pytest.mark.asyncio
    async def test_logout(self, transport, instances):
        await transport.logout()

        assert transport.terminated
        instances.logout_instance.assert_awaited_once_with("gw_t1")
        instances.delete_instance.assert_awaited_once_with("gw_t1")

    @pytest.mark.asyncio
    async def test_logout_failure(self, transport, instances):
        instances.logout_instance.side_effect = TransportFailure("API error", code="404")

        with pytest.raises(LogoutFailed):
            await transport.logout()

        assert not transport.terminated

    @pytest.mark.asyncio
    async def test_roster(self, transport, instances):
        instances.request.return_value = [
            {"remoteJid": "5511888888888@s.whatsapp.net", "pushName": "Ana"},
            {"id": "120363000000000000@g.us", "name": "Family"},
            {"pushName": "no jid"},
        ]

        contacts = await transport.list_contacts()

        assert [(c.number, c.name, c.is_group) for c in contacts] == [
            ("5511888888888", "Ana", False),
            (None, "Family", True),
        ]


class TestEvolutionInstanceManager:
    """Tests for EvolutionInstanceManager HTTP handling."""

    def make_manager(self, handler):
        manager = EvolutionInstanceManager(api_url="https://evo.example.com/", api_key="test-key")
        manager._client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            headers={"apikey": "test-key"},
        )
        return manager

    @pytest.mark.asyncio
    async def test_request_success(self):
        def handler(request):
            assert request.headers["apikey"] == "test-key"
            assert str(request.url) == "https://evo.example.com/instance/connect/gw_t1"
            return httpx.Response(200, json={"code": "2@abc"})

        manager = self.make_manager(handler)
        try:
            assert await manager.connect_instance("gw_t1") == {"code": "2@abc"}
        finally:
            await manager.close()

    @pytest.mark.asyncio
    async def test_request_error_maps_to_transport_failure(self):
        def handler(request):
            body = {"error": "Bad Request", "response": {"message": ["number not found"]}}
            return httpx.Response(400, content=json.dumps(body))

        manager = self.make_manager(handler)
        try:
            with pytest.raises(TransportFailure) as exc_info:
                await manager.request("POST", "/message/sendText/gw_t1", {"number": "1"})
        finally:
            await manager.close()

        assert exc_info.value.code == "400"
        assert exc_info.value.retryable is False
        assert exc_info.value.details["response"]["message"] == ["number not found"]

    @pytest.mark.asyncio
    async def test_fetch_instance_v2_shape(self):
        def handler(request):
            return httpx.Response(200, json=[{"name": "gw_t1", "ownerJid": "1@s.whatsapp.net"}])

        manager = self.make_manager(handler)
        try:
            info = await manager.fetch_instance("gw_t1")
        finally:
            await manager.close()

        assert info["ownerJid"] == "1@s.whatsapp.net"


class TestTransportFactory:
    """Tests for the transport factory."""

    def test_instance_names(self):
        assert instance_name_for("t1", "gw_") == "gw_t1"
        assert tenant_for_instance("gw_t1", "gw_") == "t1"
        assert tenant_for_instance("other", "gw_") is None
        assert tenant_for_instance("gw_", "gw_") is None

    def test_stub_factory(self, tmp_path):
        from basecore.settings import Settings

        factory = TransportFactory(Settings(TRANSPORT_PROVIDER="stub", SESSIONS_DIR=str(tmp_path)))
        transport = factory("t1")

        assert transport.tenant_id == "t1"
        assert transport.credentials_dir == tmp_path / "t1"

    def test_evolution_factory(self):
        from basecore.settings import Settings

        factory = TransportFactory(
            Settings(
                TRANSPORT_PROVIDER="evolution",
                EVOLUTION_API_URL="https://evo.example.com",
                EVOLUTION_INSTANCE_PREFIX="gw_",
            )
        )
        transport = factory("t1")

        assert isinstance(transport, EvolutionTransport)
        assert transport.instance_name == "gw_t1"
        assert factory.tenant_for_instance("gw_t1") == "t1"

    def test_unknown_provider(self):
        from basecore.settings import Settings

        with pytest.raises(ValueError):
            TransportFactory(Settings(TRANSPORT_PROVIDER="carrier-pigeon"))
