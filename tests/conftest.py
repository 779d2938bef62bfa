import asyncio
import inspect
import random
from typing import Any, Callable

import pytest

from persona_sim.navigation import Navigator
from persona_sim.session import SimulationSession

from fakes import FakeAccessors, instant_sleep


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    # Coroutine tests run on a fresh loop; pending background tasks die with it.
    func: Any = pyfuncitem.obj
    if inspect.iscoroutinefunction(func):
        loop = asyncio.new_event_loop()
        try:
            # funcargs also carries `request`; pass only what the test declares.
            kwargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
            loop.run_until_complete(func(**kwargs))
        finally:
            loop.close()
        return True
    return None


@pytest.fixture
def accessors() -> FakeAccessors:
    return FakeAccessors()


@pytest.fixture
def make_session() -> Callable[..., SimulationSession]:
    def _make(fake: FakeAccessors, sleep=instant_sleep) -> SimulationSession:
        return SimulationSession(fake, navigator=Navigator("ana"), rng=random.Random(0), sleep=sleep)

    return _make
