"""
AWS CloudFormation Provisioning Client
Drives CloudFormation stacks and change sets through boto3
"""

from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError, WaiterError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from stack_deployer.api.base_provider import (
    BaseProvisioningClient,
    Change,
    ChangeSetDescription,
    CHANGE_SET_TYPE_UPDATE,
)
from stack_deployer.api.exceptions import (
    ErrorKind,
    ProvisioningError,
    StackAlreadyExistsError,
    NoChangesError,
    WaiterFailedError,
    RateLimitError,
    classify_error,
)
from stack_deployer.utils.config import get_settings, Settings
from stack_deployer.utils.logger import get_logger


logger = get_logger(__name__)


ALREADY_EXISTS_CODE = "AlreadyExistsException"

# Returned by CreateChangeSet / UpdateStack when the template matches the deployed stack
NO_UPDATES_MESSAGE = "No updates are to be performed."

# StatusReason of a change set that FAILED only because it had nothing to change
NO_CHANGES_REASONS = (
    "The submitted information didn't contain changes.",
    NO_UPDATES_MESSAGE,
)

THROTTLING_CODES = (
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
)


class CloudFormationClient(BaseProvisioningClient):
    """
    CloudFormation client for stack and change set operations.
    Wait operations use boto3 waiters configured from Settings.
    """

    def __init__(self, config: Optional[Settings] = None):
        """
        Initialize CloudFormation client.

        Args:
            config: Optional Settings object. If None, loads from get_settings()
        """
        self.config = config or get_settings()

        client_kwargs: Dict[str, Any] = {"region_name": self.config.aws_region}
        if self.config.aws_access_key_id and self.config.aws_secret_access_key:
            client_kwargs["aws_access_key_id"] = self.config.aws_access_key_id
            client_kwargs["aws_secret_access_key"] = self.config.aws_secret_access_key
            if self.config.aws_session_token:
                client_kwargs["aws_session_token"] = self.config.aws_session_token
        if self.config.cloudformation_endpoint_url:
            client_kwargs["endpoint_url"] = self.config.cloudformation_endpoint_url

        self.cloudformation = boto3.client("cloudformation", **client_kwargs)

        logger.info(f"CloudFormation client initialized - Region: {self.config.aws_region}")
        if self.config.cloudformation_endpoint_url:
            logger.info(f"Endpoint: {self.config.cloudformation_endpoint_url}")

    # ------------------------------------------------------------------ #
    #  Error translation                                                   #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _translate_client_error(error: ClientError, operation: str) -> ProvisioningError:
        """
        Map a botocore ClientError onto the provisioning exception hierarchy.
        """
        details = error.response.get("Error", {})
        code = details.get("Code", "")
        message = details.get("Message", "") or str(error)

        if code == ALREADY_EXISTS_CODE:
            return StackAlreadyExistsError(message, code=code, operation=operation)
        if code == "ValidationError" and message.strip() == NO_UPDATES_MESSAGE:
            return NoChangesError(message, code=code, operation=operation)
        if code in THROTTLING_CODES:
            return RateLimitError(message, code=code, operation=operation)
        return ProvisioningError(message, code=code, operation=operation)

    @staticmethod
    def _translate_waiter_error(error: WaiterError, operation: str) -> ProvisioningError:
        """
        Map a botocore WaiterError, recognising change sets that failed for lack of changes.
        """
        last_response = error.last_response or {}
        status = last_response.get("Status")
        reason = last_response.get("StatusReason") or ""

        if any(reason.startswith(pattern) for pattern in NO_CHANGES_REASONS):
            return NoChangesError(reason, code=status, operation=operation)

        stacks = last_response.get("Stacks") or []
        if stacks:
            status = stacks[0].get("StackStatus")
            reason = stacks[0].get("StackStatusReason") or ""

        message = str(error)
        if reason:
            message = f"{message} ({reason})"
        return WaiterFailedError(message, code=status, operation=operation)

    def classify_error(self, error: BaseException) -> ErrorKind:
        """
        Classify typed provisioning errors as well as raw botocore errors.
        """
        if isinstance(error, ClientError):
            error = self._translate_client_error(error, "unknown")
        elif isinstance(error, WaiterError):
            error = self._translate_waiter_error(error, "unknown")
        return classify_error(error)

    def _wait(self, waiter_name: str, operation: str, **params) -> None:
        waiter = self.cloudformation.get_waiter(waiter_name)
        try:
            waiter.wait(WaiterConfig=self.config.waiter_config, **params)
        except WaiterError as e:
            raise self._translate_waiter_error(e, operation) from e

    # ------------------------------------------------------------------ #
    #  Stacks                                                              #
    # ------------------------------------------------------------------ #

    def create_stack(
        self,
        stack_name: str,
        template_body: str,
        capabilities: List[str]
    ) -> str:
        """
        Start creating a new stack. Does not wait for completion.

        Args:
            stack_name: Name of the stack to create
            template_body: Rendered template
            capabilities: Acknowledged capabilities (e.g. CAPABILITY_IAM)

        Returns:
            Stack id assigned by CloudFormation

        Raises:
            StackAlreadyExistsError: If a stack with this name already exists
            RateLimitError: If the request was throttled
            ProvisioningError: For any other API error
        """
        logger.info(f"Creating stack: {stack_name}")
        try:
            response = self.cloudformation.create_stack(
                StackName=stack_name,
                TemplateBody=template_body,
                Capabilities=capabilities
            )
        except ClientError as e:
            raise self._translate_client_error(e, "CreateStack") from e

        stack_id = response.get("StackId", "")
        logger.debug(f"Stack id: {stack_id}")
        return stack_id

    def wait_until_stack_create_complete(self, stack_name: str) -> None:
        """
        Block until the stack reaches CREATE_COMPLETE.

        Raises:
            WaiterFailedError: If the stack ends in a failure state or the waiter gives up
        """
        logger.info(f"⏳ Waiting for stack {stack_name} to be created…")
        self._wait("stack_create_complete", "WaitUntilStackCreateComplete", StackName=stack_name)

    def wait_until_stack_update_complete(self, stack_name: str) -> None:
        """
        Block until the stack reaches UPDATE_COMPLETE.

        Raises:
            WaiterFailedError: If the update rolls back or the waiter gives up
        """
        logger.info(f"⏳ Waiting for stack {stack_name} to be updated…")
        self._wait("stack_update_complete", "WaitUntilStackUpdateComplete", StackName=stack_name)

    # ------------------------------------------------------------------ #
    #  Change sets                                                         #
    # ------------------------------------------------------------------ #

    def create_change_set(
        self,
        change_set_name: str,
        stack_name: str,
        template_body: str,
        capabilities: List[str],
        change_set_type: str = CHANGE_SET_TYPE_UPDATE
    ) -> str:
        """
        Create a change set against an existing stack.

        Args:
            change_set_name: Name of the change set, unique within the stack
            stack_name: Target stack
            template_body: Rendered template
            capabilities: Acknowledged capabilities
            change_set_type: UPDATE (default) or CREATE

        Returns:
            Change set id

        Raises:
            NoChangesError: If CloudFormation reports nothing to update
            RateLimitError: If the request was throttled
            ProvisioningError: For any other API error
        """
        logger.info(f"Creating change set {change_set_name} for stack {stack_name}")
        try:
            response = self.cloudformation.create_change_set(
                ChangeSetName=change_set_name,
                StackName=stack_name,
                TemplateBody=template_body,
                Capabilities=capabilities,
                ChangeSetType=change_set_type
            )
        except ClientError as e:
            raise self._translate_client_error(e, "CreateChangeSet") from e

        return response.get("Id", "")

    def wait_until_change_set_create_complete(
        self,
        change_set_name: str,
        stack_name: str
    ) -> None:
        """
        Block until the change set reaches CREATE_COMPLETE.

        A change set that contains no changes ends FAILED, so a WaiterFailedError
        here does not by itself mean the deployment failed.

        Raises:
            NoChangesError: If the change set failed because it has no changes
            WaiterFailedError: For any other failure state or timeout
        """
        logger.info(f"⏳ Waiting for change set {change_set_name} to be computed…")
        self._wait(
            "change_set_create_complete",
            "WaitUntilChangeSetCreateComplete",
            ChangeSetName=change_set_name,
            StackName=stack_name
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(RateLimitError),
        reraise=True
    )
    def _describe_change_set_page(
        self,
        change_set_name: str,
        stack_name: str,
        next_token: Optional[str] = None
    ) -> Dict[str, Any]:
        params = {"ChangeSetName": change_set_name, "StackName": stack_name}
        if next_token:
            params["NextToken"] = next_token
        try:
            return self.cloudformation.describe_change_set(**params)
        except ClientError as e:
            raise self._translate_client_error(e, "DescribeChangeSet") from e

    def describe_change_set(
        self,
        change_set_name: str,
        stack_name: str
    ) -> ChangeSetDescription:
        """
        Describe a change set, following pagination until every change is collected.

        Returns:
            ChangeSetDescription with a flattened list of resource changes
        """
        changes: List[Change] = []
        next_token = None
        response: Dict[str, Any] = {}

        while True:
            response = self._describe_change_set_page(change_set_name, stack_name, next_token)
            for entry in response.get("Changes", []):
                resource = entry.get("ResourceChange", {})
                changes.append({
                    "action": resource.get("Action", ""),
                    "logical_id": resource.get("LogicalResourceId", ""),
                    "resource_type": resource.get("ResourceType", ""),
                    "replacement": resource.get("Replacement"),
                })
            next_token = response.get("NextToken")
            if not next_token:
                break

        logger.debug(f"Change set {change_set_name} has {len(changes)} change(s)")

        return {
            "name": response.get("ChangeSetName", change_set_name),
            "stack_name": response.get("StackName", stack_name),
            "type": response.get("ChangeSetType"),
            "status": response.get("Status", ""),
            "status_reason": response.get("StatusReason"),
            "changes": changes,
        }

    def execute_change_set(self, change_set_name: str, stack_name: str) -> None:
        """
        Apply a computed change set. Does not wait for the stack update.

        Raises:
            RateLimitError: If the request was throttled
            ProvisioningError: If the change set cannot be executed
        """
        logger.info(f"Executing change set {change_set_name} on stack {stack_name}")
        try:
            self.cloudformation.execute_change_set(
                ChangeSetName=change_set_name,
                StackName=stack_name
            )
        except ClientError as e:
            raise self._translate_client_error(e, "ExecuteChangeSet") from e
