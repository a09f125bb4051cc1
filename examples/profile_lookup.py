"""Fetch a user profile from a flaky data-access layer.

Run with: python examples/profile_lookup.py
"""

import asyncio
import logging

from retrywise.application.retry_executor import execute_with_retry
from retrywise.domain.policies import data_access_policy


class QueryError(Exception):
    def __init__(self, message, code):
        super().__init__(message)
        self.code = code


class FlakyProfiles:
    """Fails with a deadlock twice, then returns the row"""

    def __init__(self):
        self.calls = 0

    async def get_profile(self, user_id):
        self.calls += 1
        if self.calls < 3:
            raise QueryError("deadlock detected", code="40P01")
        return {"id": user_id, "role": "admin", "permissions": ["employees.read"]}


async def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    repo = FlakyProfiles()
    policy = data_access_policy().replace(base_delay=0.1)

    result = await execute_with_retry(lambda: repo.get_profile("u-1"), policy)

    if result.succeeded:
        print(f"Profile after {result.attempts} attempts: {result.value}")
    else:
        print(f"Profile lookup failed ({result.failure.kind.value}): {result.failure}")


if __name__ == "__main__":
    asyncio.run(main())
