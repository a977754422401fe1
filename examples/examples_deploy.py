"""
Example: Deploying a stack with StackDeployer

Shows the create-then-update lifecycle: the first run creates the stack,
later runs update it through a change set, and re-running with an unchanged
template is reported as "no_changes".
"""

from pathlib import Path

from stack_deployer.api import get_provisioning_client
from stack_deployer.services import StackDeployer, DeploymentRequest, DeploymentError, new_change_set_name
from stack_deployer.utils.config import Settings
from stack_deployer.utils.logger import get_logger

logger = get_logger(__name__)

TEMPLATE_PATH = Path(__file__).parent / "templates" / "bucket.yml"


# ==================== Example 1: Deploy with configured settings ====================

def example_deploy():
    """Example: Create or update a stack using settings from the environment / .env"""

    client = get_provisioning_client()
    deployer = StackDeployer(client)

    stack_name = "example-bucket"
    request = DeploymentRequest(
        template_body=TEMPLATE_PATH.read_text(),
        stack_name=stack_name,
        change_set_name=new_change_set_name(stack_name)
    )

    try:
        result = deployer.deploy(request)
        print(f"Stack {result['stack_name']}: {result['action']}")
    except DeploymentError as e:
        # e.stage tells which step failed, e.cause holds the provider error
        print(f"Deployment failed at '{e.stage}': {e.cause}")


# ==================== Example 2: Deploy against LocalStack ====================

def example_deploy_localstack():
    """Example: Point the CloudFormation client at a local emulator"""

    settings = Settings(
        aws_access_key_id="test",
        aws_secret_access_key="test",
        cloudformation_endpoint_url="http://localhost:4566",
        waiter_delay_seconds=2,
        waiter_max_attempts=60
    )
    client = get_provisioning_client("CLOUDFORMATION", config=settings)
    deployer = StackDeployer(client)

    template = TEMPLATE_PATH.read_text()

    # Deploying twice in a row: the second run takes the no-changes branch
    for attempt in range(2):
        result = deployer.deploy_app(
            template,
            "example-bucket",
            new_change_set_name("example-bucket") + f"-{attempt}"
        )
        logger.info(f"Attempt {attempt + 1}: {result['action']}")


if __name__ == "__main__":
    example_deploy()
