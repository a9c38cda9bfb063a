"""Shared HTTP plumbing: middleware, exception handlers, request dependencies."""
