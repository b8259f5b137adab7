# -*- coding: utf-8 -*-

import pytest

from eventual.scheduler import LoopScheduler, set_default_scheduler


@pytest.fixture(autouse=True)
def loop(request):
    """Install a new LoopScheduler as default scheduler during the test.

    Nothing scheduled is executed until the test calls ``loop.run()`` (or
    ``run_soon()``, ``advance()``).

    Returns:
        LoopScheduler: the default scheduler of the test.
    """
    loop = LoopScheduler()
    previous = set_default_scheduler(loop)
    request.addfinalizer(lambda: set_default_scheduler(previous))
    return loop
