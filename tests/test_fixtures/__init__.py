"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .broker_factory import InMemoryBroker, InMemoryHandle, InMemorySession

__all__ = ["InMemoryBroker", "InMemoryHandle", "InMemorySession"]
