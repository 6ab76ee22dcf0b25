"""PayOS gateway configuration."""

import logging
from dataclasses import dataclass

from payos import AsyncPayOS

from src.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayOSConfig:
    """Credentials and endpoints for the PayOS merchant API.

    Built once from settings and handed to the gateway adapter, so the
    adapter never reads environment state itself.
    """

    client_id: str
    api_key: str
    checksum_key: str
    api_url: str = "https://api-merchant.payos.vn"
    frontend_url: str = "http://localhost:5173"
    timeout_seconds: float = 10.0

    @property
    def is_configured(self) -> bool:
        """Check whether credentials are present."""
        return bool(self.client_id and self.api_key and self.checksum_key)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PayOSConfig":
        """Build the gateway configuration from application settings.

        Args:
            settings: Application settings.

        Returns:
            PayOSConfig: Gateway configuration.
        """
        if not settings.is_payos_configured:
            logger.warning("PayOS credentials not configured. Hosted checkout will not work.")
        return cls(
            client_id=settings.payos_client_id,
            api_key=settings.payos_api_key,
            checksum_key=settings.payos_checksum_key,
            api_url=settings.payos_api_url.rstrip("/"),
            frontend_url=settings.frontend_url.rstrip("/"),
            timeout_seconds=settings.payos_timeout_seconds,
        )


def create_payos_client(config: PayOSConfig) -> AsyncPayOS:
    """Create the PayOS SDK client for a configuration.

    The SDK's own retries are disabled: a failed link creation leaves the
    payment ``failed`` and a failed cancellation is only logged.

    Args:
        config: Gateway configuration with credentials present.

    Returns:
        AsyncPayOS: Client bound to the configured merchant API.
    """
    return AsyncPayOS(
        client_id=config.client_id,
        api_key=config.api_key,
        checksum_key=config.checksum_key,
        base_url=config.api_url,
        timeout=config.timeout_seconds,
        max_retries=0,
    )
