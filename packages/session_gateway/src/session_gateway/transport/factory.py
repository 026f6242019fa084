"""
Transport Factory

Builds the per-tenant transport adapter selected by TRANSPORT_PROVIDER.
"""

import logging
from pathlib import Path

from basecore.settings import Settings, get_settings
from session_gateway.transport.base import TransportAdapter
from session_gateway.transport.evolution import EvolutionInstanceManager, EvolutionTransport
from session_gateway.transport.stub import StubTransport

logger = logging.getLogger(__name__)

PROVIDERS = ("stub", "evolution")


def instance_name_for(tenant_id: str, prefix: str = "") -> str:
    """Evolution instance name for a tenant."""
    return f"{prefix}{tenant_id}"


def tenant_for_instance(instance_name: str, prefix: str = "") -> str | None:
    """Reverse of instance_name_for; None when the instance is not ours."""
    if not instance_name or not instance_name.startswith(prefix):
        return None
    tenant_id = instance_name[len(prefix):]
    return tenant_id or None


class TransportFactory:
    """
    Creates one transport adapter per session.

    The Evolution instance manager (and its HTTP connection pool) is shared
    by every adapter the factory creates; call close() on shutdown.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.provider = self.settings.TRANSPORT_PROVIDER.lower()
        if self.provider not in PROVIDERS:
            raise ValueError(f"Unknown transport provider: {self.settings.TRANSPORT_PROVIDER}")

        self._instances: EvolutionInstanceManager | None = None
        if self.provider == "evolution":
            if not self.settings.EVOLUTION_API_URL:
                logger.warning("Evolution provider selected without EVOLUTION_API_URL")
            self._instances = EvolutionInstanceManager(
                api_url=self.settings.EVOLUTION_API_URL,
                api_key=self.settings.EVOLUTION_API_KEY,
            )

    def __call__(self, tenant_id: str) -> TransportAdapter:
        if self.provider == "evolution":
            return EvolutionTransport(
                tenant_id,
                instances=self._instances,
                instance_name=instance_name_for(tenant_id, self.settings.EVOLUTION_INSTANCE_PREFIX),
                webhook_url=self.settings.EVOLUTION_WEBHOOK_URL or None,
                connect_timeout=self.settings.CONNECT_TIMEOUT_SECONDS,
                max_qr_retries=self.settings.QR_MAX_RETRIES,
            )

        return StubTransport(
            tenant_id,
            credentials_dir=Path(self.settings.SESSIONS_DIR) / tenant_id,
            auto_pair=self.settings.STUB_AUTO_PAIR,
        )

    def tenant_for_instance(self, instance_name: str) -> str | None:
        return tenant_for_instance(instance_name, self.settings.EVOLUTION_INSTANCE_PREFIX)

    async def close(self) -> None:
        if self._instances is not None:
            await self._instances.close()
