import asyncio

import pytest


@pytest.fixture(autouse=True)
def event_loop_for_pulumi():
    """asyncio.run() in other tests leaves no current loop; Pulumi mocks need one."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    asyncio.set_event_loop(None)
    loop.close()
