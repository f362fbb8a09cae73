"""
Tests for inbound message filtering and routing.
"""

import pytest

from wagateway.client.events import EventBus, MessagesUpsert
from wagateway.inbound.router import InboundRouter, extract_text, parse_inbound

from tests.conftest import FakeHandle, RecordingDispatcher, inbound_payload


class TestExtractText:
    def test_conversation_text(self):
        assert extract_text({"conversation": "  hello  "}) == "hello"

    def test_extended_text(self):
        assert extract_text({"extendedTextMessage": {"text": "see https://example.com"}}) == "see https://example.com"

    def test_conversation_wins(self):
        message = {"conversation": "plain", "extendedTextMessage": {"text": "extended"}}
        assert extract_text(message) == "plain"

    def test_blank_conversation_falls_back_to_extended(self):
        message = {"conversation": "   ", "extendedTextMessage": {"text": " quoted reply "}}
        assert extract_text(message) == "quoted reply"

    def test_non_text_message(self):
        assert extract_text({"imageMessage": {"url": "https://mmg.whatsapp.net/x"}}) == ""
        assert extract_text(None) == ""


class TestParseInbound:
    def test_parses_text_message(self):
        message = parse_inbound("acme", inbound_payload("Oi"))

        assert message.tenant_id == "acme"
        assert message.from_jid == "5511888888888@s.whatsapp.net"
        assert message.client_phone == "5511888888888"
        assert message.push_name == "Maria"
        assert message.timestamp.year == 2024

    def test_payload_for_reply_pipeline(self):
        message = parse_inbound("acme", inbound_payload("Oi", extended=True))

        assert message.to_payload() == {
            "tenant_id": "acme",
            "client_phone": "5511888888888",
            "message": "Oi",
            "client_name": "Maria",
        }

    @pytest.mark.parametrize("payload", [
        inbound_payload(from_me=True),
        inbound_payload(remote_jid="status@broadcast"),
        inbound_payload(remote_jid="120363000000000000@broadcast"),
        inbound_payload(text="   "),
        {"key": {"fromMe": False}, "message": {"conversation": "no sender"}},
        {"key": {"remoteJid": "5511888888888@s.whatsapp.net"}, "message": {"audioMessage": {}}},
    ])
    def test_ignored_payloads(self, payload):
        assert parse_inbound("acme", payload) is None


class TestInboundRouter:
    @pytest.fixture
    def handle(self):
        return FakeHandle("acme", EventBus("acme"))

    @pytest.mark.asyncio
    async def test_only_eligible_messages_are_dispatched(self, handle):
        dispatcher = RecordingDispatcher()
        router = InboundRouter(dispatcher)
        upsert = MessagesUpsert(messages=[
            inbound_payload("first"),
            inbound_payload("mine", from_me=True),
            inbound_payload("story", remote_jid="status@broadcast"),
            inbound_payload("second", extended=True),
        ])

        dispatched = await router.on_inbound_event("acme", handle, upsert)

        assert dispatched == 2
        assert [m.text for m in dispatcher.messages] == ["first", "second"]
        assert handle.sent == []

    @pytest.mark.asyncio
    async def test_direct_reply_goes_back_to_sender(self, handle):
        router = InboundRouter(RecordingDispatcher(reply="Recebido!"))

        await router.on_inbound_event("acme", handle, MessagesUpsert(messages=[inbound_payload("Oi")]))

        assert handle.sent == [("5511888888888@s.whatsapp.net", "Recebido!")]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(self, handle):
        dispatcher = RecordingDispatcher(reply="ok")
        dispatcher.fail_on = {"boom"}
        router = InboundRouter(dispatcher)
        upsert = MessagesUpsert(messages=[inbound_payload("boom"), inbound_payload("after")])

        dispatched = await router.on_inbound_event("acme", handle, upsert)

        assert dispatched == 2
        assert [m.text for m in dispatcher.messages] == ["boom", "after"]
        assert handle.sent == [("5511888888888@s.whatsapp.net", "ok")]

    @pytest.mark.asyncio
    async def test_send_failure_is_contained(self, handle):
        handle.send_error = RuntimeError("socket closed")
        router = InboundRouter(RecordingDispatcher(reply="ok"))
        upsert = MessagesUpsert(messages=[inbound_payload("one"), inbound_payload("two")])

        assert await router.on_inbound_event("acme", handle, upsert) == 2

    @pytest.mark.asyncio
    async def test_reply_dropped_without_open_connection(self, handle):
        await handle.close()
        dispatcher = RecordingDispatcher(reply="late")
        router = InboundRouter(dispatcher)

        await router.on_inbound_event("acme", handle, MessagesUpsert(messages=[inbound_payload("Oi")]))
        await router.on_inbound_event("acme", None, MessagesUpsert(messages=[inbound_payload("Oi")]))

        assert len(dispatcher.messages) == 2
        assert handle.sent == []
