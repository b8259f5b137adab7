# -*- coding: utf-8 -*-

from .__version__ import __version__  # noqa

from .deferred import (Deferred, Outcome, RejectionError, SelfResolutionError,
                       ThreadPoolExecutor, TimeoutError, all_settled,
                       all_succeed, first_settled, is_thenable, wrap_deferred)
from .scheduler import (AsyncioScheduler, LoopScheduler, Scheduler,
                        ThreadScheduler, get_default_scheduler,
                        set_default_scheduler)

__all__ = ['AsyncioScheduler', 'Deferred', 'LoopScheduler', 'Outcome',
           'RejectionError', 'Scheduler', 'SelfResolutionError',
           'ThreadPoolExecutor', 'ThreadScheduler', 'TimeoutError',
           'all_settled', 'all_succeed', 'first_settled',
           'get_default_scheduler', 'is_thenable', 'set_default_scheduler',
           'wrap_deferred']
