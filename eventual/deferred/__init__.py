# -*- coding: utf-8 -*-

from .combinators import Outcome, all_settled, all_succeed, first_settled
from .decorators import wrap_deferred
from .deferred import Deferred
from .errors import RejectionError, SelfResolutionError, TimeoutError
from .thread_pool import ThreadPoolExecutor
from .util import is_thenable

__all__ = ['Deferred', 'Outcome', 'RejectionError', 'SelfResolutionError',
           'ThreadPoolExecutor', 'TimeoutError', 'all_settled', 'all_succeed',
           'first_settled', 'is_thenable', 'wrap_deferred']
