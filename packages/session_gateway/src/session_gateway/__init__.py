"""
Session Gateway

Multi-tenant messaging session orchestrator.

Each tenant ("client") owns one Session driving one transport connection
through QR pairing, readiness and teardown. Inbound messages, contacts and
chats are mirrored into the relational store with idempotent inserts.

Entry point for the HTTP layer is service.GatewayService.
"""
