# -*- coding: utf-8 -*-


class SelfResolutionError(TypeError):
    """A Deferred has been resolved with itself.

    It's used as the failure reason of the Deferred; it's never raised to the
    caller of the resolving function.
    """
    pass


class TimeoutError(Exception):
    """An operation could not be executed within the time allowed."""
    pass


class RejectionError(Exception):
    """A Deferred has failed with a reason who is not an exception.

    Raised by ``Deferred.result()``, as a non-exception value can't be raised
    directly.

    Attributes:
        reason: the original failure reason.
    """

    def __init__(self, reason):
        Exception.__init__(self, 'Deferred rejected with reason %r' % (reason,))
        self.reason = reason
