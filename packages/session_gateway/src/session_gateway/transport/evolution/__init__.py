"""
Evolution API Transport

Transport for Evolution API (Baileys-based WhatsApp Web integration).
"""

from session_gateway.transport.evolution.client import EvolutionTransport
from session_gateway.transport.evolution.instance_manager import EvolutionInstanceManager

__all__ = ["EvolutionTransport", "EvolutionInstanceManager"]
