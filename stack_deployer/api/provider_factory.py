"""
Provisioning Client Factory
Creates provisioning client instances based on configuration
"""

from typing import Optional

from stack_deployer.api.base_provider import BaseProvisioningClient
from stack_deployer.api.cloudformation_client import CloudFormationClient
from stack_deployer.utils.config import get_settings, Settings
from stack_deployer.utils.logger import get_logger

logger = get_logger(__name__)


def get_provisioning_client(
    provider_name: Optional[str] = None,
    config: Optional[Settings] = None
) -> BaseProvisioningClient:
    """
    Factory function to create provisioning client instances.

    Args:
        provider_name: Optional provider name ("CLOUDFORMATION").
                      If None, reads from config.
        config: Optional Settings instance. Uses default if None.

    Returns:
        Provisioning client instance

    Raises:
        ValueError: If provider_name is invalid

    Example:
        # Use configured provider
        client = get_provisioning_client()

        # Explicitly use CloudFormation
        client = get_provisioning_client("CLOUDFORMATION")
    """
    if config is None:
        config = get_settings()

    # Determine provider
    if provider_name is None:
        provider_name = config.provisioning_provider

    provider_name = provider_name.upper()

    logger.info(f"Creating provisioning client: {provider_name}")

    if provider_name == "CLOUDFORMATION":
        return CloudFormationClient(config)

    raise ValueError(
        f"Unknown provisioning provider: {provider_name}. "
        f"Valid options are: CLOUDFORMATION"
    )
