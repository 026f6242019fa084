"""
Credential Store

Per-tenant credential directories under SESSIONS_DIR. Removal is retried
with a linear backoff because another process (the transport's browser or
socket) may still hold files open for a moment after logout.
"""

import asyncio
import logging
import shutil
from pathlib import Path

from session_gateway.errors import BadRequest

logger = logging.getLogger(__name__)


class CredentialStore:
    """Scoped access to per-tenant credential directories."""

    def __init__(self, root: str | Path, max_attempts: int = 5, backoff_seconds: float = 1.0):
        self.root = Path(root).resolve()
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

    def path_for(self, tenant_id: str) -> Path:
        """
        Credential directory of a tenant.

        Raises:
            BadRequest: The tenant id would escape the credentials root
        """
        path = (self.root / tenant_id).resolve()
        if path == self.root or self.root not in path.parents:
            raise BadRequest(f"Invalid tenant id for credential path: {tenant_id!r}")
        return path

    async def remove(self, tenant_id: str) -> bool:
        """
        Delete a tenant's credential directory.

        Attempt n waits n * backoff_seconds before the next one. A missing
        directory counts as removed.

        Returns:
            True once the directory is gone, False after giving up
        """
        path = self.path_for(tenant_id)

        for attempt in range(1, self.max_attempts + 1):
            try:
                await asyncio.to_thread(shutil.rmtree, path)
                logger.info("Removed credentials", extra={"tenant_id": tenant_id, "attempt": attempt})
                return True
            except FileNotFoundError:
                return True
            except OSError as e:
                if attempt == self.max_attempts:
                    break
                delay = attempt * self.backoff_seconds
                logger.warning(
                    f"Credential removal failed, retrying in {delay}s: {e}",
                    extra={"tenant_id": tenant_id, "attempt": attempt},
                )
                await asyncio.sleep(delay)

        logger.error(
            "Giving up on credential removal",
            extra={"tenant_id": tenant_id, "attempts": self.max_attempts, "path": str(path)},
        )
        return False
