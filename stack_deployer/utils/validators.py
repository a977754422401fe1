"""
Input validation utilities for stack names, change set names and templates
"""

import re


class ValidationError(Exception):
    """Custom exception for validation errors"""
    pass


class ResourceNameValidator:
    """Validator for CloudFormation stack and change set names"""

    # Must start with a letter; letters, digits and hyphens only
    NAME_REGEX = re.compile(r'^[a-zA-Z][-a-zA-Z0-9]*$')

    MAX_LENGTH = 128

    @classmethod
    def validate(cls, name: str, kind: str = "Stack name") -> str:
        """
        Validate a stack or change set name.

        Args:
            name: Name to validate
            kind: Human readable label used in error messages

        Returns:
            Cleaned name (stripped)

        Raises:
            ValidationError: If the name is invalid
        """
        if not name:
            raise ValidationError(f"{kind} cannot be empty")

        name = name.strip()

        if len(name) > cls.MAX_LENGTH:
            raise ValidationError(
                f"{kind} too long (max {cls.MAX_LENGTH} characters)"
            )

        if not cls.NAME_REGEX.match(name):
            raise ValidationError(
                f"Invalid {kind.lower()}: {name}. "
                "Must start with a letter and contain only letters, numbers, and hyphens."
            )

        return name


class TemplateValidator:
    """Validator for inline template bodies"""

    # CloudFormation rejects inline TemplateBody values above this size
    MAX_BODY_BYTES = 51200

    @classmethod
    def validate(cls, template_body: str) -> str:
        """
        Validate an inline template body.

        Args:
            template_body: Rendered template (JSON or YAML)

        Returns:
            The template body, unchanged

        Raises:
            ValidationError: If the template is empty or too large
        """
        if not template_body or not template_body.strip():
            raise ValidationError("Template body cannot be empty")

        size = len(template_body.encode("utf-8"))
        if size > cls.MAX_BODY_BYTES:
            raise ValidationError(
                f"Template body is {size} bytes; inline templates are limited "
                f"to {cls.MAX_BODY_BYTES} bytes"
            )

        return template_body


def validate_stack_name(name: str) -> str:
    """Convenience function for stack name validation"""
    return ResourceNameValidator.validate(name, kind="Stack name")


def validate_change_set_name(name: str) -> str:
    """Convenience function for change set name validation"""
    return ResourceNameValidator.validate(name, kind="Change set name")


def validate_template_body(template_body: str) -> str:
    """Convenience function for template validation"""
    return TemplateValidator.validate(template_body)
