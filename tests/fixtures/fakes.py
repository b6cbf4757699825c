"""
Minimal asyncpg stand-ins for unit tests
"""
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock


class FakeConnection:
    """Connection whose fetch/fetchrow/execute are AsyncMocks"""

    def __init__(self, rows=None, row=None):
        self.fetch = AsyncMock(return_value=rows if rows is not None else [])
        self.fetchrow = AsyncMock(return_value=row)
        self.execute = AsyncMock(return_value='INSERT 0 1')


class FakePool:
    """Tracks acquire/release and close like asyncpg.Pool"""

    def __init__(self, conn):
        self.conn = conn
        self.acquired = 0
        self.released = 0
        self.closed = False

    @asynccontextmanager
    async def acquire(self):
        self.acquired += 1
        try:
            yield self.conn
        finally:
            self.released += 1

    async def close(self):
        self.closed = True
