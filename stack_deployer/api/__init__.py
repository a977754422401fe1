"""
API Layer - Provisioning Client Implementations
Stack deployment is written against the BaseProvisioningClient interface
"""

# Base Client
from stack_deployer.api.base_provider import (
    BaseProvisioningClient,
    Change,
    ChangeSetDescription,
    CAPABILITY_IAM,
    CHANGE_SET_TYPE_CREATE,
    CHANGE_SET_TYPE_UPDATE,
)

# Client Implementations
from stack_deployer.api.cloudformation_client import CloudFormationClient

# Client Factory
from stack_deployer.api.provider_factory import get_provisioning_client

# Exceptions (shared across clients)
from stack_deployer.api.exceptions import (
    ErrorKind,
    classify_error,
    APIError,
    ProvisioningError,
    StackAlreadyExistsError,
    NoChangesError,
    WaiterFailedError,
    RateLimitError,
)

__all__ = [
    # Base
    "BaseProvisioningClient",
    "Change",
    "ChangeSetDescription",
    "CAPABILITY_IAM",
    "CHANGE_SET_TYPE_CREATE",
    "CHANGE_SET_TYPE_UPDATE",

    # Clients
    "CloudFormationClient",

    # Factory
    "get_provisioning_client",

    # Exceptions
    "ErrorKind",
    "classify_error",
    "APIError",
    "ProvisioningError",
    "StackAlreadyExistsError",
    "NoChangesError",
    "WaiterFailedError",
    "RateLimitError",
]
