"""
Business logic and service layer
"""

from stack_deployer.services.stack_deployer import (
    StackDeployer,
    DeploymentError,
    DeploymentRequest,
    DeploymentResult,
    new_change_set_name,
)

__all__ = [
    "StackDeployer",
    "DeploymentError",
    "DeploymentRequest",
    "DeploymentResult",
    "new_change_set_name",
]
