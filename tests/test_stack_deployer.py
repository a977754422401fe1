"""
Tests for the stack deployer create-or-update state machine.
The provisioning client is replaced at the BaseProvisioningClient boundary.

Run:
    python -m pytest tests/test_stack_deployer.py -v
"""

import logging
import pickle

import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
from botocore.exceptions import ClientError

from stack_deployer.api.base_provider import (
    BaseProvisioningClient,
    CAPABILITY_IAM,
    CHANGE_SET_TYPE_UPDATE,
)
from stack_deployer.api.exceptions import (
    ProvisioningError,
    StackAlreadyExistsError,
    NoChangesError,
    WaiterFailedError,
    classify_error,
)
from stack_deployer.services.stack_deployer import (
    StackDeployer,
    DeploymentError,
    DeploymentRequest,
    new_change_set_name,
)
from stack_deployer.utils.config import Settings
from stack_deployer.utils.validators import ValidationError


# ---------------------------------------------------------------------------
# Helpers / fixtures
# ---------------------------------------------------------------------------

MOCK_TEMPLATE = "mockTemplate"
MOCK_STACK_NAME = "mockStackName"
MOCK_CHANGE_SET_NAME = "mockChangeSetName"


def _mock_client() -> MagicMock:
    """Return a client double that classifies errors like a real client."""
    client = MagicMock(spec=BaseProvisioningClient)
    client.classify_error.side_effect = classify_error
    return client


def _already_exists() -> StackAlreadyExistsError:
    return StackAlreadyExistsError(
        f"Stack [{MOCK_STACK_NAME}] already exists",
        code="AlreadyExistsException",
        operation="CreateStack",
    )


def _existing_stack_client() -> MagicMock:
    client = _mock_client()
    client.create_stack.side_effect = _already_exists()
    return client


def _deploy(client):
    return StackDeployer(client).deploy_app(MOCK_TEMPLATE, MOCK_STACK_NAME, MOCK_CHANGE_SET_NAME)


class FakeProvisioningClient(BaseProvisioningClient):
    """
    In-memory provider: stacks hold their current template, change sets hold
    the template they would apply.
    """

    def __init__(self):
        self.stacks = {}
        self.change_sets = {}
        self.calls = []

    def create_stack(self, stack_name, template_body, capabilities):
        self.calls.append("create_stack")
        if stack_name in self.stacks:
            raise StackAlreadyExistsError(f"Stack [{stack_name}] already exists")
        self.stacks[stack_name] = template_body
        return f"arn:fake:{stack_name}"

    def wait_until_stack_create_complete(self, stack_name):
        self.calls.append("wait_until_stack_create_complete")

    def create_change_set(self, change_set_name, stack_name, template_body,
                          capabilities, change_set_type=CHANGE_SET_TYPE_UPDATE):
        self.calls.append("create_change_set")
        key = (stack_name, change_set_name)
        if key in self.change_sets:
            raise ProvisioningError(f"ChangeSet [{change_set_name}] already exists")
        self.change_sets[key] = template_body
        return f"arn:fake:{stack_name}:{change_set_name}"

    def _changes(self, change_set_name, stack_name):
        template = self.change_sets[(stack_name, change_set_name)]
        if template == self.stacks[stack_name]:
            return []
        return [{
            "action": "Modify",
            "logical_id": "Bucket",
            "resource_type": "AWS::S3::Bucket",
            "replacement": "False",
        }]

    def wait_until_change_set_create_complete(self, change_set_name, stack_name):
        self.calls.append("wait_until_change_set_create_complete")
        if not self._changes(change_set_name, stack_name):
            raise WaiterFailedError("The submitted information didn't contain changes.")

    def describe_change_set(self, change_set_name, stack_name):
        self.calls.append("describe_change_set")
        return {
            "name": change_set_name,
            "stack_name": stack_name,
            "type": "UPDATE",
            "status": "CREATE_COMPLETE",
            "status_reason": None,
            "changes": self._changes(change_set_name, stack_name),
        }

    def execute_change_set(self, change_set_name, stack_name):
        self.calls.append("execute_change_set")
        self.stacks[stack_name] = self.change_sets[(stack_name, change_set_name)]

    def wait_until_stack_update_complete(self, stack_name):
        self.calls.append("wait_until_stack_update_complete")


# ===========================================================================
# 1. Create path
# ===========================================================================

class TestCreateStack:

    def test_creates_stack_and_waits_for_completion(self):
        """A fresh stack should be created with CAPABILITY_IAM and waited on."""
        client = _mock_client()

        result = _deploy(client)

        assert result["action"] == "created"
        assert result["stack_name"] == MOCK_STACK_NAME
        client.create_stack.assert_called_once_with(
            MOCK_STACK_NAME, MOCK_TEMPLATE, [CAPABILITY_IAM]
        )
        client.wait_until_stack_create_complete.assert_called_once_with(MOCK_STACK_NAME)

    def test_create_path_never_touches_change_sets(self):
        """No change set operation should run when the stack did not exist."""
        client = _mock_client()

        _deploy(client)

        client.create_change_set.assert_not_called()
        client.wait_until_change_set_create_complete.assert_not_called()
        client.describe_change_set.assert_not_called()
        client.execute_change_set.assert_not_called()
        client.wait_until_stack_update_complete.assert_not_called()

    def test_create_stack_failure_is_fatal(self):
        """Any create_stack error other than 'already exists' should stop the deployment."""
        client = _mock_client()
        cause = ProvisioningError("Template format error", code="ValidationError")
        client.create_stack.side_effect = cause

        with pytest.raises(DeploymentError) as exc_info:
            _deploy(client)

        assert exc_info.value.stage == "create stack"
        assert exc_info.value.cause is cause
        assert exc_info.value.__cause__ is cause
        client.wait_until_stack_create_complete.assert_not_called()
        client.create_change_set.assert_not_called()

    def test_unclassified_exception_from_create_is_fatal(self):
        """Errors that are not provisioning errors should also propagate."""
        client = _mock_client()
        client.create_stack.side_effect = RuntimeError("connection reset")

        with pytest.raises(DeploymentError, match="^create stack: connection reset$"):
            _deploy(client)

    def test_create_wait_failure_is_wrapped(self):
        """A failed create wait should surface with its stage name."""
        client = _mock_client()
        client.wait_until_stack_create_complete.side_effect = WaiterFailedError("ROLLBACK_COMPLETE")

        with pytest.raises(DeploymentError) as exc_info:
            _deploy(client)

        assert str(exc_info.value) == "wait until stack create complete: ROLLBACK_COMPLETE"
        client.create_change_set.assert_not_called()


# ===========================================================================
# 2. Update path
# ===========================================================================

class TestUpdateStack:

    def test_creates_and_executes_change_set_if_stack_exists(self):
        """An existing stack should be updated through an UPDATE change set."""
        client = _existing_stack_client()

        result = _deploy(client)

        assert result == {
            "stack_name": MOCK_STACK_NAME,
            "change_set_name": MOCK_CHANGE_SET_NAME,
            "action": "updated",
        }
        client.create_change_set.assert_called_once_with(
            MOCK_CHANGE_SET_NAME,
            MOCK_STACK_NAME,
            MOCK_TEMPLATE,
            [CAPABILITY_IAM],
            change_set_type=CHANGE_SET_TYPE_UPDATE,
        )
        client.wait_until_change_set_create_complete.assert_called_once_with(
            MOCK_CHANGE_SET_NAME, MOCK_STACK_NAME
        )
        client.execute_change_set.assert_called_once_with(MOCK_CHANGE_SET_NAME, MOCK_STACK_NAME)
        client.wait_until_stack_update_complete.assert_called_once_with(MOCK_STACK_NAME)
        client.describe_change_set.assert_not_called()
        client.wait_until_stack_create_complete.assert_not_called()

    def test_change_set_uses_same_inputs_as_create_attempt(self):
        """Stack name, template and capabilities must match the create attempt."""
        client = _existing_stack_client()

        _deploy(client)

        create_args = client.create_stack.call_args[0]
        change_set_args = client.create_change_set.call_args[0]
        assert change_set_args[1] == create_args[0]
        assert change_set_args[2] == create_args[1]
        assert change_set_args[3] == create_args[2]

    def test_create_change_set_failure_halts(self):
        """A create_change_set failure should stop before waiting."""
        client = _existing_stack_client()
        client.create_change_set.side_effect = ProvisioningError("Access denied", code="AccessDenied")

        with pytest.raises(DeploymentError, match="^create change set: "):
            _deploy(client)

        client.wait_until_change_set_create_complete.assert_not_called()
        client.execute_change_set.assert_not_called()

    def test_create_change_set_no_changes_is_success(self):
        """A backend that rejects an identical template up front is a no-op deployment."""
        client = _existing_stack_client()
        client.create_change_set.side_effect = NoChangesError("No updates are to be performed.")

        result = _deploy(client)

        assert result["action"] == "no_changes"
        client.wait_until_change_set_create_complete.assert_not_called()
        client.execute_change_set.assert_not_called()

    def test_execute_failure_halts(self):
        """An execute_change_set failure should stop before the update wait."""
        client = _existing_stack_client()
        client.execute_change_set.side_effect = ProvisioningError("InvalidChangeSetStatus")

        with pytest.raises(DeploymentError) as exc_info:
            _deploy(client)

        assert exc_info.value.stage == "execute change set"
        client.wait_until_stack_update_complete.assert_not_called()

    def test_update_wait_failure_is_wrapped(self):
        """A failed update wait should surface with its stage name."""
        client = _existing_stack_client()
        client.wait_until_stack_update_complete.side_effect = WaiterFailedError("UPDATE_ROLLBACK_COMPLETE")

        with pytest.raises(DeploymentError) as exc_info:
            _deploy(client)

        assert str(exc_info.value) == "wait until stack update complete: UPDATE_ROLLBACK_COMPLETE"


# ===========================================================================
# 3. Change set wait failures
# ===========================================================================

class TestChangeSetWaitFailure:

    def test_describes_change_set_and_succeeds_when_no_changes(self):
        """An empty change list after a failed wait means nothing to deploy."""
        client = _existing_stack_client()
        client.wait_until_change_set_create_complete.side_effect = Exception("mockError")
        client.describe_change_set.return_value = {
            "name": MOCK_CHANGE_SET_NAME,
            "stack_name": MOCK_STACK_NAME,
            "type": "UPDATE",
            "status": "FAILED",
            "status_reason": "The submitted information didn't contain changes.",
            "changes": [],
        }

        result = _deploy(client)

        assert result["action"] == "no_changes"
        client.describe_change_set.assert_called_once_with(MOCK_CHANGE_SET_NAME, MOCK_STACK_NAME)
        client.execute_change_set.assert_not_called()
        client.wait_until_stack_update_complete.assert_not_called()

    def test_wraps_describe_change_set_error(self):
        """A describe failure replaces the wait error and names its own stage."""
        client = _existing_stack_client()
        client.wait_until_change_set_create_complete.side_effect = Exception("waitError")
        client.describe_change_set.side_effect = Exception("mockError")

        with pytest.raises(DeploymentError) as exc_info:
            _deploy(client)

        assert str(exc_info.value) == "describe change set: mockError"
        assert exc_info.value.stage == "describe change set"
        assert str(exc_info.value.cause) == "mockError"
        client.execute_change_set.assert_not_called()

    def test_pending_changes_after_failed_wait_is_fatal(self):
        """Real pending changes after a failed wait propagate the wait error."""
        client = _existing_stack_client()
        wait_error = WaiterFailedError("Waiter ChangeSetCreateComplete failed: Max attempts exceeded")
        client.wait_until_change_set_create_complete.side_effect = wait_error
        client.describe_change_set.return_value = {
            "name": MOCK_CHANGE_SET_NAME,
            "stack_name": MOCK_STACK_NAME,
            "type": "UPDATE",
            "status": "CREATE_PENDING",
            "status_reason": None,
            "changes": [{
                "action": "Add",
                "logical_id": "Queue",
                "resource_type": "AWS::SQS::Queue",
                "replacement": None,
            }],
        }

        with pytest.raises(DeploymentError) as exc_info:
            _deploy(client)

        assert exc_info.value.stage == "wait until change set create complete"
        assert exc_info.value.cause is wait_error
        client.execute_change_set.assert_not_called()


# ===========================================================================
# 4. Repeated deployments against a stateful provider
# ===========================================================================

class TestDeploymentErrorPickling:
    """Failures must survive pickling so deployments can run in a process pool."""

    def test_round_trip_keeps_stage_and_message(self):
        error = DeploymentError("describe change set", Exception("mockError"))

        restored = pickle.loads(pickle.dumps(error))

        assert isinstance(restored, DeploymentError)
        assert str(restored) == "describe change set: mockError"
        assert restored.stage == "describe change set"
        assert str(restored.cause) == "mockError"

    def test_round_trip_keeps_provider_error_details(self):
        cause = ProvisioningError("Rate exceeded", code="ValidationError", operation="DescribeChangeSet")
        error = DeploymentError("describe change set", cause)

        restored = pickle.loads(pickle.dumps(error))

        assert isinstance(restored.cause, ProvisioningError)
        assert restored.cause.code == "ValidationError"
        assert restored.cause.operation == "DescribeChangeSet"
        assert str(restored) == "describe change set: ValidationError: Rate exceeded"

    def test_error_raised_by_deployer_is_picklable(self):
        client = _existing_stack_client()
        client.wait_until_change_set_create_complete.side_effect = WaiterFailedError("wait error")
        client.describe_change_set.side_effect = Exception("mockError")

        with pytest.raises(DeploymentError) as exc_info:
            _deploy(client)

        restored = pickle.loads(pickle.dumps(exc_info.value))
        assert str(restored) == str(exc_info.value) == "describe change set: mockError"


class TestDeploymentLogging:
    """Each outcome is reported once, by the deployer, even with the real client underneath."""

    @staticmethod
    def _cloudformation_client(mock_boto, mock_cf):
        from stack_deployer.api.cloudformation_client import CloudFormationClient

        mock_boto.return_value = mock_cf
        return CloudFormationClient(config=Settings(_env_file=None))

    @staticmethod
    def _messages(caplog, text):
        return [r for r in caplog.records if text in r.getMessage()]

    @patch("boto3.client")
    def test_stack_created_is_logged_once(self, mock_boto, caplog):
        mock_cf = MagicMock()
        mock_cf.create_stack.return_value = {"StackId": "mockStackId"}
        client = self._cloudformation_client(mock_boto, mock_cf)

        with caplog.at_level(logging.INFO, logger="stack_deployer"):
            _deploy(client)

        assert len(self._messages(caplog, f"Stack {MOCK_STACK_NAME} created")) == 1

    @patch("boto3.client")
    def test_stack_updated_is_logged_once(self, mock_boto, caplog):
        mock_cf = MagicMock()
        mock_cf.create_stack.side_effect = ClientError(
            {"Error": {"Code": "AlreadyExistsException", "Message": "Stack already exists"}},
            "CreateStack",
        )
        mock_cf.create_change_set.return_value = {"Id": "mockChangeSetId"}
        client = self._cloudformation_client(mock_boto, mock_cf)

        with caplog.at_level(logging.INFO, logger="stack_deployer"):
            result = _deploy(client)

        assert result["action"] == "updated"
        assert len(self._messages(caplog, f"Stack {MOCK_STACK_NAME} updated")) == 1


class TestRepeatedDeployments:

    def test_second_unchanged_deployment_takes_no_changes_branch(self):
        """Deploying the same template twice should succeed both times."""
        client = FakeProvisioningClient()
        deployer = StackDeployer(client)

        first = deployer.deploy_app(MOCK_TEMPLATE, MOCK_STACK_NAME, "deploy-1")
        second = deployer.deploy_app(MOCK_TEMPLATE, MOCK_STACK_NAME, "deploy-2")

        assert first["action"] == "created"
        assert second["action"] == "no_changes"
        assert "execute_change_set" not in client.calls

    def test_changed_template_is_applied(self):
        """A new template should flow through execute and update the stack."""
        client = FakeProvisioningClient()
        deployer = StackDeployer(client)

        deployer.deploy_app(MOCK_TEMPLATE, MOCK_STACK_NAME, "deploy-1")
        result = deployer.deploy_app("mockTemplateV2", MOCK_STACK_NAME, "deploy-2")

        assert result["action"] == "updated"
        assert client.stacks[MOCK_STACK_NAME] == "mockTemplateV2"
        assert client.calls[-2:] == ["execute_change_set", "wait_until_stack_update_complete"]

    def test_reused_change_set_name_fails(self):
        """Change set names are the caller's responsibility and must be fresh."""
        client = FakeProvisioningClient()
        deployer = StackDeployer(client)

        deployer.deploy_app(MOCK_TEMPLATE, MOCK_STACK_NAME, "deploy-1")
        deployer.deploy_app("mockTemplateV2", MOCK_STACK_NAME, "deploy-2")

        with pytest.raises(DeploymentError, match="^create change set: "):
            deployer.deploy_app("mockTemplateV3", MOCK_STACK_NAME, "deploy-2")


# ===========================================================================
# 5. Requests and change set names
# ===========================================================================

class TestDeploymentRequest:

    def test_deploy_delegates_to_deploy_app(self):
        """deploy() should pass the validated request fields through."""
        client = _mock_client()
        request = DeploymentRequest(
            template_body=MOCK_TEMPLATE,
            stack_name=MOCK_STACK_NAME,
            change_set_name=MOCK_CHANGE_SET_NAME,
        )

        result = StackDeployer(client).deploy(request)

        assert result["action"] == "created"
        client.create_stack.assert_called_once_with(MOCK_STACK_NAME, MOCK_TEMPLATE, [CAPABILITY_IAM])

    def test_request_is_immutable(self):
        request = DeploymentRequest(
            template_body=MOCK_TEMPLATE,
            stack_name=MOCK_STACK_NAME,
            change_set_name=MOCK_CHANGE_SET_NAME,
        )
        with pytest.raises(Exception):
            request.stack_name = "other"

    @pytest.mark.parametrize("field,value", [
        ("stack_name", "1-starts-with-digit"),
        ("stack_name", "has_underscore"),
        ("change_set_name", ""),
        ("change_set_name", "x" * 129),
        ("template_body", "   "),
    ])
    def test_invalid_request_is_rejected(self, field, value):
        """Invalid input should fail before any provider call."""
        fields = {
            "template_body": MOCK_TEMPLATE,
            "stack_name": MOCK_STACK_NAME,
            "change_set_name": MOCK_CHANGE_SET_NAME,
        }
        fields[field] = value

        with pytest.raises(ValidationError):
            DeploymentRequest(**fields)

    def test_new_change_set_name_is_valid_and_timestamped(self):
        now = datetime(2024, 5, 17, 9, 30, 0, tzinfo=timezone.utc)
        name = new_change_set_name("my-app", now=now)

        assert name == "my-app-20240517093000"

    def test_new_change_set_name_respects_length_limit(self):
        name = new_change_set_name("a" * 128)

        assert len(name) <= 128
        assert name.startswith("a")
