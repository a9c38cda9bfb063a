"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from ticketflow.core.exceptions import (
    ErrorKind,
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    InvalidTransitionException,
    InactiveAgentException,
    NoCapacityException,
    ConfigurationException,
)

__all__ = [
    "ErrorKind",
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "InvalidTransitionException",
    "InactiveAgentException",
    "NoCapacityException",
    "ConfigurationException",
]
