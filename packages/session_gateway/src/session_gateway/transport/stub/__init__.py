"""
Stub Transport

For development and testing.
"""

from session_gateway.transport.stub.client import StubTransport

__all__ = ["StubTransport"]
