"""Temporal client factory.

Creates connections to Temporal using the connection settings from
core.config (environment variables, optionally loaded from .env).
"""

from pathlib import Path
from typing import Optional, Union

from temporalio.client import Client
from temporalio.service import TLSConfig

from core.config import Settings, get_settings


def _tls_config(settings: Settings) -> Union[bool, TLSConfig]:
    if settings.temporal_cert_path:
        # One PEM file holding both the certificate chain and its private key
        pem = Path(settings.temporal_cert_path).read_bytes()
        return TLSConfig(client_cert=pem, client_private_key=pem)
    return bool(settings.temporal_api_key)


async def get_temporal_client(settings: Optional[Settings] = None) -> Client:
    """Create and return a Temporal client.

    Reads configuration from settings:
    - temporal_endpoint: host:port (TEMPORAL_ENDPOINT)
    - temporal_namespace: Namespace (TEMPORAL_NAMESPACE, default "default")
    - temporal_api_key: API key for Temporal Cloud (TEMPORAL_API_KEY, optional)
    - temporal_cert_path: PEM with client certificate and key for mTLS (TEMPORAL_CERT_PATH, optional)

    Without an API key or certificate the connection is plaintext, which is
    what a local dev server (``temporal server start-dev``) expects.

    Returns:
        Connected Temporal client

    Raises:
        ValueError: If no endpoint is configured
    """
    settings = settings or get_settings()

    if not settings.temporal_endpoint:
        raise ValueError(
            "TEMPORAL_ENDPOINT environment variable not set. "
            "Set to your Temporal endpoint (e.g., 'localhost:7233')"
        )

    return await Client.connect(
        target_host=settings.temporal_endpoint,
        namespace=settings.temporal_namespace,
        tls=_tls_config(settings),
        api_key=settings.temporal_api_key,
    )
