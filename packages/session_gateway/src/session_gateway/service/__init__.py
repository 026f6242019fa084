"""
Gateway service layer.
"""

from session_gateway.service.gateway_service import (
    GatewayService,
    InitializeResult,
    SessionStatus,
    build_gateway_service,
    validate_tenant_id,
)

__all__ = [
    "GatewayService",
    "InitializeResult",
    "SessionStatus",
    "build_gateway_service",
    "validate_tenant_id",
]
