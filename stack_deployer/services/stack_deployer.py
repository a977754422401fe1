"""
Stack Deployer
Creates a stack on first deployment and updates it through a change set on
every deployment after that. A change set with nothing to change counts as
a successful deployment.
"""

from datetime import datetime, timezone
from typing import Literal, Optional, TypedDict

from pydantic import BaseModel, ConfigDict, field_validator

from stack_deployer.api.base_provider import (
    BaseProvisioningClient,
    CAPABILITY_IAM,
    CHANGE_SET_TYPE_UPDATE,
)
from stack_deployer.api.exceptions import ErrorKind
from stack_deployer.utils.logger import get_logger
from stack_deployer.utils.validators import (
    ResourceNameValidator,
    validate_stack_name,
    validate_change_set_name,
    validate_template_body,
)

logger = get_logger(__name__)


# Stage names used as the prefix of every DeploymentError
STAGE_CREATE_STACK = "create stack"
STAGE_WAIT_STACK_CREATE = "wait until stack create complete"
STAGE_CREATE_CHANGE_SET = "create change set"
STAGE_WAIT_CHANGE_SET_CREATE = "wait until change set create complete"
STAGE_DESCRIBE_CHANGE_SET = "describe change set"
STAGE_EXECUTE_CHANGE_SET = "execute change set"
STAGE_WAIT_STACK_UPDATE = "wait until stack update complete"


class DeploymentError(Exception):
    """Raised when a deployment stage fails; str() reads '<stage>: <cause>'"""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(stage, cause)

    def __str__(self):
        return f"{self.stage}: {self.cause}"


class DeploymentRequest(BaseModel):
    """Validated, immutable input of a single deployment"""

    model_config = ConfigDict(frozen=True)

    template_body: str
    stack_name: str
    change_set_name: str

    @field_validator("template_body")
    @classmethod
    def check_template_body(cls, v: str) -> str:
        return validate_template_body(v)

    @field_validator("stack_name")
    @classmethod
    def check_stack_name(cls, v: str) -> str:
        return validate_stack_name(v)

    @field_validator("change_set_name")
    @classmethod
    def check_change_set_name(cls, v: str) -> str:
        return validate_change_set_name(v)


DeploymentAction = Literal["created", "updated", "no_changes"]


class DeploymentResult(TypedDict):
    """Outcome of a successful deployment"""
    stack_name: str
    change_set_name: str
    action: DeploymentAction


def new_change_set_name(stack_name: str, now: Optional[datetime] = None) -> str:
    """
    Build a fresh change set name for one deployment attempt.
    Change set names must be unique per stack, so a UTC timestamp is appended.
    """
    now = now or datetime.now(timezone.utc)
    suffix = now.strftime("%Y%m%d%H%M%S")
    prefix = stack_name[:ResourceNameValidator.MAX_LENGTH - len(suffix) - 1]
    return f"{prefix}-{suffix}"


class StackDeployer:
    """
    Idempotent create-or-update deployment of a single stack.

    The deployer holds nothing but a reference to the provisioning client, so
    one instance can deploy different stacks from several threads as long as
    the client allows it. Deploying the same stack concurrently is not safe.
    """

    def __init__(self, client: BaseProvisioningClient):
        """
        Initialize the deployer.

        Args:
            client: Provisioning client used for every stack and change set call
        """
        self.client = client

    def deploy(self, request: DeploymentRequest) -> DeploymentResult:
        """Deploy a validated request. See deploy_app."""
        return self.deploy_app(
            request.template_body,
            request.stack_name,
            request.change_set_name
        )

    def deploy_app(
        self,
        template_body: str,
        stack_name: str,
        change_set_name: str
    ) -> DeploymentResult:
        """
        Create the stack, or update it through a change set if it already exists.

        Args:
            template_body:   Rendered template
            stack_name:      Stack to create or update
            change_set_name: Name for the change set used on the update path;
                             must not have been used for this stack before

        Returns:
            DeploymentResult whose action is "created", "updated" or "no_changes"

        Raises:
            DeploymentError: If any stage fails. Nothing is retried.
        """
        capabilities = [CAPABILITY_IAM]

        try:
            self.client.create_stack(stack_name, template_body, capabilities)
        except Exception as e:
            if self.client.classify_error(e) != ErrorKind.ALREADY_EXISTS:
                raise self._fail(STAGE_CREATE_STACK, e) from e
            logger.info(f"Stack {stack_name} already exists, updating through change set {change_set_name}")
        else:
            try:
                self.client.wait_until_stack_create_complete(stack_name)
            except Exception as e:
                raise self._fail(STAGE_WAIT_STACK_CREATE, e) from e
            logger.info(f"🎉 Stack {stack_name} created")
            return self._result(stack_name, change_set_name, "created")

        return self._update(template_body, stack_name, change_set_name, capabilities)

    def _update(
        self,
        template_body: str,
        stack_name: str,
        change_set_name: str,
        capabilities: list
    ) -> DeploymentResult:
        try:
            self.client.create_change_set(
                change_set_name,
                stack_name,
                template_body,
                capabilities,
                change_set_type=CHANGE_SET_TYPE_UPDATE
            )
        except Exception as e:
            # CloudFormation reports no changes through a FAILED change set instead
            if self.client.classify_error(e) == ErrorKind.NO_CHANGES:
                logger.info(f"✅ Stack {stack_name} is already up to date")
                return self._result(stack_name, change_set_name, "no_changes")
            raise self._fail(STAGE_CREATE_CHANGE_SET, e) from e

        try:
            self.client.wait_until_change_set_create_complete(change_set_name, stack_name)
        except Exception as wait_error:
            # A change set without changes ends up FAILED; describe it to tell the two apart
            logger.debug(f"Change set {change_set_name} did not complete: {wait_error}")
            try:
                description = self.client.describe_change_set(change_set_name, stack_name)
            except Exception as e:
                raise self._fail(STAGE_DESCRIBE_CHANGE_SET, e) from e

            if not description["changes"]:
                logger.info(f"✅ No changes to apply to stack {stack_name}")
                return self._result(stack_name, change_set_name, "no_changes")

            logger.warning(
                f"Change set {change_set_name} has {len(description['changes'])} "
                f"pending change(s) but did not complete"
            )
            raise self._fail(STAGE_WAIT_CHANGE_SET_CREATE, wait_error) from wait_error

        try:
            self.client.execute_change_set(change_set_name, stack_name)
        except Exception as e:
            raise self._fail(STAGE_EXECUTE_CHANGE_SET, e) from e

        try:
            self.client.wait_until_stack_update_complete(stack_name)
        except Exception as e:
            raise self._fail(STAGE_WAIT_STACK_UPDATE, e) from e

        logger.info(f"🎉 Stack {stack_name} updated")
        return self._result(stack_name, change_set_name, "updated")

    @staticmethod
    def _fail(stage: str, cause: BaseException) -> DeploymentError:
        logger.error(f"❌ {stage} failed: {cause}")
        return DeploymentError(stage, cause)

    @staticmethod
    def _result(stack_name: str, change_set_name: str, action: DeploymentAction) -> DeploymentResult:
        return {
            "stack_name": stack_name,
            "change_set_name": change_set_name,
            "action": action,
        }
