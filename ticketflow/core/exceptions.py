"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

Every engine failure carries an error ``kind`` so the HTTP layer (and any
other caller) can react to the category of failure without matching on
exception classes:

- ``not_found``           ticket or agent id does not resolve
- ``invalid_transition``  the ticket/agent state forbids the action
- ``inactive_agent``      target agent exists but is deactivated
- ``no_capacity``         target agent is at max_load
- ``validation_error``    malformed input reaching the engine
"""

from typing import Optional


class ErrorKind:
    """Error kinds surfaced to callers."""
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    INACTIVE_AGENT = "inactive_agent"
    NO_CAPACITY = "no_capacity"
    VALIDATION_ERROR = "validation_error"
    INTERNAL = "internal"


class ApplicationException(Exception):
    """Base exception for all application errors."""

    kind: str = ErrorKind.INTERNAL

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""

    kind = ErrorKind.VALIDATION_ERROR


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    kind = ErrorKind.NOT_FOUND

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class InvalidTransitionException(DomainException):
    """Action attempted on a ticket or agent whose state forbids it."""

    kind = ErrorKind.INVALID_TRANSITION


class InactiveAgentException(DomainException):
    """Target agent exists but is deactivated."""

    kind = ErrorKind.INACTIVE_AGENT

    def __init__(self, agent_id: str, details: Optional[dict] = None):
        self.agent_id = agent_id
        super().__init__(
            f"Agent '{agent_id}' is inactive",
            details or {"agent_id": agent_id}
        )


class NoCapacityException(DomainException):
    """Target agent is at its max_load."""

    kind = ErrorKind.NO_CAPACITY

    def __init__(
        self,
        agent_id: str,
        current_load: Optional[int] = None,
        max_load: Optional[int] = None,
    ):
        self.agent_id = agent_id
        super().__init__(
            f"Agent '{agent_id}' has no capacity",
            {"agent_id": agent_id, "current_load": current_load, "max_load": max_load}
        )


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""
