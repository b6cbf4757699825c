"""
Shared test fixtures and utilities for alert worker tests.

This package provides:
- fakes: asyncpg pool/connection stand-ins for the rule store and poller tests
"""

from tests.fixtures import fakes

__all__ = ["fakes"]
