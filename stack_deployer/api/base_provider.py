"""
Base Provisioning Client Interface
Abstract base class for provisioning backend implementations
"""

from abc import ABC, abstractmethod
from typing import List, Optional, TypedDict

from stack_deployer.api.exceptions import ErrorKind, classify_error


CAPABILITY_IAM = "CAPABILITY_IAM"

CHANGE_SET_TYPE_CREATE = "CREATE"
CHANGE_SET_TYPE_UPDATE = "UPDATE"


class Change(TypedDict):
    """A single resource change inside a change set"""
    action: str  # Add, Modify, Remove, Import, Dynamic
    logical_id: str
    resource_type: str
    replacement: Optional[str]  # True, False, Conditional


class ChangeSetDescription(TypedDict):
    """Result of describing a change set"""
    name: str
    stack_name: str
    type: Optional[str]  # CREATE or UPDATE
    status: str
    status_reason: Optional[str]
    changes: List[Change]


class BaseProvisioningClient(ABC):
    """
    Abstract base class for provisioning clients.
    All provisioning backends driven by the stack deployer must inherit this class.
    """

    @abstractmethod
    def create_stack(
        self,
        stack_name: str,
        template_body: str,
        capabilities: List[str]
    ) -> str:
        """
        Start creating a new stack.

        Args:
            stack_name: Name of the stack
            template_body: Rendered template
            capabilities: Acknowledged capabilities, e.g. [CAPABILITY_IAM]

        Returns:
            Provider identifier of the stack

        Raises:
            StackAlreadyExistsError: If a stack with this name already exists
            ProvisioningError: On any other failure
        """
        pass

    @abstractmethod
    def wait_until_stack_create_complete(self, stack_name: str) -> None:
        """
        Block until the stack finishes creating.

        Raises:
            WaiterFailedError: If creation fails, rolls back or times out
        """
        pass

    @abstractmethod
    def create_change_set(
        self,
        change_set_name: str,
        stack_name: str,
        template_body: str,
        capabilities: List[str],
        change_set_type: str = CHANGE_SET_TYPE_UPDATE
    ) -> str:
        """
        Ask the provider to compute a change set against an existing stack.

        Returns:
            Provider identifier of the change set
        """
        pass

    @abstractmethod
    def wait_until_change_set_create_complete(
        self,
        change_set_name: str,
        stack_name: str
    ) -> None:
        """
        Block until the change set has been computed.
        A change set without changes may be reported as a failure here.
        """
        pass

    @abstractmethod
    def describe_change_set(
        self,
        change_set_name: str,
        stack_name: str
    ) -> ChangeSetDescription:
        """
        Describe a change set, including the full list of changes.
        """
        pass

    @abstractmethod
    def execute_change_set(self, change_set_name: str, stack_name: str) -> None:
        """
        Apply a computed change set to its stack.
        """
        pass

    @abstractmethod
    def wait_until_stack_update_complete(self, stack_name: str) -> None:
        """
        Block until the stack finishes updating.
        """
        pass

    def classify_error(self, error: BaseException) -> ErrorKind:
        """
        Classify an error raised by one of this client's operations.
        Default implementation classifies by exception type.

        Returns:
            ErrorKind.ALREADY_EXISTS, ErrorKind.NO_CHANGES or ErrorKind.OTHER
        """
        return classify_error(error)

    def get_provider_name(self) -> str:
        """
        Get provider name.
        Default implementation returns class name.

        Returns:
            Provider name string
        """
        return self.__class__.__name__.replace("Client", "")
