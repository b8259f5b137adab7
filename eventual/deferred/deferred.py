# -*- coding: utf-8 -*-

import logging
from functools import partial
from threading import Condition

from ..common import config
from .. import scheduler as eventual_scheduler
from .errors import RejectionError, SelfResolutionError, TimeoutError
from .util import is_thenable

_logger = logging.getLogger(__name__)

# Marker of a thenable who has not called back synchronously.
_UNSET = object()


class Deferred(object):
    """It represents the eventual result of an operation.

    A Deferred contains a value not yet known when the Deferred is created.
    It's first pending, then settled exactly once: either fulfilled with a
    value, or rejected with a reason. The settlement can't be changed after.

    Continuations are attached with ``then()``, who returns a new Deferred
    from the result of the continuation. Continuations are never called
    synchronously: they are handed to the scheduler, even if the Deferred is
    already settled.

    All calls to the methods are thread-safe.
    """

    PENDING = 'pending'
    FULFILLED = 'fulfilled'
    REJECTED = 'rejected'

    def __init__(self, setup, scheduler=None, _name=None, _previous=None):
        """Constructor of the Deferred.

        Generate the two resolving functions, then call `setup`.
        It means the setup function will be fully executed before the
        constructor returns.
        If `setup` raises an exception, it's caught and the Deferred is
        rejected with this exception, unless it has already been resolved.

        Args:
            setup (callable): Takes 2 callable arguments:
                The first one, `resolve()`, settles the Deferred with the
                value passed as its only argument. If this value is a thenable
                (like another Deferred), its outcome is adopted.
                The second, `fail()`, rejects the Deferred with the reason
                passed as argument (usually an instance of `Exception`).
                Only the first call of one of these functions has an effect.
            scheduler (Scheduler, optional): scheduler used to run the
                continuations. By default, the default scheduler is used.
            _name (str): if set, name used when converted to text.
        """
        if scheduler is None:
            scheduler = eventual_scheduler.get_default_scheduler()

        self._state = self.PENDING
        self._outcome = None
        self._subscribers = []
        self._condition = Condition()
        self._scheduler = scheduler
        self._name = _name or getattr(setup, '__name__', '???')
        self._previous = _previous

        resolve, fail = self._resolving_functions()
        try:
            setup(resolve, fail)
        except Exception as error:
            fail(error)

    @property
    def state(self):
        """str: one of PENDING, FULFILLED or REJECTED."""
        with self._condition:
            return self._state

    @property
    def is_pending(self):
        return self.state == self.PENDING

    @property
    def is_fulfilled(self):
        return self.state == self.FULFILLED

    @property
    def is_rejected(self):
        return self.state == self.REJECTED

    @property
    def value(self):
        """Value of the fulfilled Deferred. None in others states."""
        with self._condition:
            if self._state == self.FULFILLED:
                return self._outcome
            return None

    @property
    def reason(self):
        """Reason of the rejected Deferred. None in others states."""
        with self._condition:
            if self._state == self.REJECTED:
                return self._outcome
            return None

    @property
    def scheduler(self):
        return self._scheduler

    def result(self, timeout=None):
        """Wait for the result and returns it as soon as it's available.

        The wait blocks the current thread. It should not be used from the
        thread running the scheduler loop.

        Args:
            timeout (int, optional): if set, maximum time to wait the Deferred
                to be fulfilled. By default, it can wait indefinitely.
        Returns:
            *: value encapsulated, defined by the operation.
        Raises:
            TimeoutError: if the Deferred is not settled within the delay.
            RejectionError: if the Deferred is rejected with a reason who is
                not an exception.
            *: If the Deferred is rejected, the rejection reason is raised.
        """
        with self._condition:
            self._wait(timeout)
            if self._state == self.REJECTED:
                if isinstance(self._outcome, BaseException):
                    raise self._outcome
                raise RejectionError(self._outcome)
            return self._outcome

    def exception(self, timeout=None):
        """Wait for the Deferred rejection and returns its reason.

        Args:
            timeout (int, optional): if set, maximum time to wait the Deferred
                to be settled. By default, it can wait indefinitely.
        Returns:
            *: the reason of the rejection of the Deferred.
            None: if the Deferred is fulfilled.
        Raises:
            TimeoutError: if the Deferred is not settled within the delay.
        """
        with self._condition:
            self._wait(timeout)
            if self._state == self.REJECTED:
                return self._outcome
            return None

    def _wait(self, timeout):
        if not self._condition.wait_for(
                lambda: self._state != self.PENDING, timeout):
            raise TimeoutError()

    def then(self, on_fulfilled=None, on_rejected=None):
        """Create a new Deferred from callbacks called when this one settles.

        If the Deferred is fulfilled, the `on_fulfilled` callback will be
        called. Otherwise (the Deferred has been rejected), the `on_rejected`
        callback is called. In both cases, the call is made by the scheduler,
        after the current code returns.

        The callback will define the state of the returned Deferred. If the
        callback raises an exception, the new Deferred is rejected. The
        callback can returns:
        - A value: the new Deferred will be fulfilled with this value.
        - Another Deferred, or any object with a `then` method: when fulfilled
            or rejected, will transfer its status (state and value/reason) to
            the Deferred returned by this method.

        If a callback is not defined, the state of the "self Deferred" is
        transferred to the new Deferred (the state and the value/reason).

        Args:
            on_fulfilled (callable, optional): This callback will receive the
                value of the original Deferred as argument.
            on_rejected (callable, optional): This callback will receive the
                reason of the original Deferred as argument.
        Returns:
            Deferred<*>: new Deferred depending of self.
        """
        if not hasattr(on_fulfilled, '__call__'):
            on_fulfilled = None
        if not hasattr(on_rejected, '__call__'):
            on_rejected = None

        def run_handler(handler, outcome, resolve, fail, pass_through):
            if handler is None:
                return pass_through(outcome)
            try:
                new_value = handler(outcome)
            except Exception as error:
                return fail(error)
            resolve(new_value)

        def chained_setup(resolve, fail):

            def on_parent_fulfilled(value):
                self._scheduler.schedule_soon(partial(
                    run_handler, on_fulfilled, value, resolve, fail, resolve))

            def on_parent_rejected(reason):
                self._scheduler.schedule_soon(partial(
                    run_handler, on_rejected, reason, resolve, fail, fail))

            self._subscribe(on_parent_fulfilled, on_parent_rejected)

        if not on_rejected:
            name = '%s' % getattr(on_fulfilled, '__name__', '???')
        elif not on_fulfilled:
            name = '<None, %s>' % getattr(on_rejected, '__name__', '???')
        else:
            name = '<%s, %s>' % (getattr(on_fulfilled, '__name__', '???'),
                                 getattr(on_rejected, '__name__', '???'))
        return Deferred(chained_setup, scheduler=self._scheduler, _name=name,
                        _previous=self)

    chain = then

    def catch(self, on_rejected):
        """Create a new Deferred with a callback called when an error occurs.

        Alias of `self.then(None, on_rejected)`

        Args:
            on_rejected (callable): Will be called with the rejection reason
                if `self` is rejected.
        returns:
            Deferred<*>: new Deferred chained to `self`. If `self` is
                fulfilled, the value will be the same as `self`. Otherwise,
                the value returned by the `on_rejected()` callback.
        """
        return self.then(None, on_rejected)

    def finally_run(self, on_settled):
        """Create a new Deferred with a callback called in any case.

        The callback takes no argument. The new Deferred keeps the outcome of
        `self`, except in two cases:
        - the callback raises an exception: the new Deferred is rejected with
            it, even if `self` was rejected.
        - the callback returns a thenable: the new Deferred adopts its
            outcome, whether it's a value or a rejection.

        Args:
            on_settled (callable): callback without argument.
        Returns:
            Deferred<*>: new Deferred chained to `self`.
        """
        def on_value(value):
            result = on_settled()
            if is_thenable(result):
                return result
            return value

        def on_reason(reason):
            result = on_settled()
            if is_thenable(result):
                return result
            return Deferred.reject(reason, scheduler=self._scheduler)

        on_value.__name__ = on_reason.__name__ = getattr(
            on_settled, '__name__', '???')
        return self.then(on_value, on_reason)

    def safeguard(self):
        """Log the rejection of this Deferred with the most details possible.

        This method is aimed to protect the program from uncaught rejected
        Deferred. If no error handler has been set (via then() or catch()),
        the default behavior is to do nothing, and thus, errors are silently
        ignored.
        Calling `safeguard()` will log these errors as ERROR.

        Returns:
            Deferred: self
        """
        def guard(reason):
            if isinstance(reason, BaseException):
                _logger.error('[SAFEGUARD] %s', self,
                              exc_info=(type(reason), reason,
                                        reason.__traceback__))
            else:
                _logger.error('[SAFEGUARD] %s rejected with %r', self, reason)

        self.then(None, guard)
        return self

    def __repr__(self):
        return 'Deferred(%s)' % self._inner_print()

    def _inner_print(self):
        with self._condition:
            if self._state == self.REJECTED:
                state = 'R'
            elif self._state == self.FULFILLED:
                state = 'F'
            else:
                state = 'P'

        if self._previous:
            return '%s -> %s %s' % (self._previous._inner_print(), self._name,
                                    state)
        return '%s %s' % (self._name, state)

    @classmethod
    def resolve(cls, value, scheduler=None):
        """Create a Deferred who resolves the selected value.

        Args:
            value: result of the Deferred. If it's already a Deferred, it's
                returned as is. If it's another kind of thenable, its outcome
                will be adopted.
            scheduler (Scheduler, optional)
        Returns:
            Deferred: the Deferred resolved with the value passed in
                parameter.
        """
        if isinstance(value, cls):
            return value
        return cls(lambda resolve, fail: resolve(value), scheduler=scheduler,
                   _name='RESOLVE')

    @classmethod
    def reject(cls, reason, scheduler=None):
        """Create a Deferred rejected for the reason specified.

        Args:
            reason: reason set to the Deferred, usually an Exception.
            scheduler (Scheduler, optional)
        Returns:
            Deferred: new Deferred already rejected.
        """
        return cls(lambda resolve, fail: fail(reason), scheduler=scheduler,
                   _name='REJECT')

    def _resolving_functions(self):
        """Build the `resolve` and `fail` functions passed to the setup.

        Once one of them has been called, all subsequent calls are ignored,
        even if the Deferred is still pending (while it waits for a
        thenable).
        """
        already_called = [False]

        def resolve(value=None):
            with self._condition:
                if already_called[0]:
                    return self._log_ignored(self.FULFILLED, value)
                already_called[0] = True
            self._resolve(value)

        def fail(reason):
            with self._condition:
                if already_called[0]:
                    return self._log_ignored(self.REJECTED, reason)
                already_called[0] = True
            self._fail(reason)

        return resolve, fail

    def _resolve(self, value):
        """Resolution algorithm.

        The Deferred is fulfilled with `value`, except if `value` is a
        thenable: then it's unwrapped, until a non-thenable value is found.
        Thenables who call back synchronously are unwrapped in a loop, so a
        long chain of them doesn't consume the call stack.
        """
        while True:
            if value is self:
                return self._fail(SelfResolutionError(
                    'A Deferred cannot be resolved with itself.'))
            try:
                then = value.then if is_thenable(value) else None
            except Exception as error:
                return self._fail(error)
            if then is None:
                return self._fulfil(value)

            value = self._adopt(then)
            if value is _UNSET:
                return

    def _adopt(self, then):
        """Call the `then` method of a thenable, with guarded callbacks.

        The thenable may call its callbacks several times, or both of them,
        or raise after having called one of them: only the first event is
        taken into account.

        Returns:
            The value given synchronously (during the call of `then`) to the
            fulfillment callback, who should be resolved in turn. _UNSET if
            the resolution will be done later, or is already done.
        """
        guard = {'called': False, 'running': True, 'value': _UNSET}

        def on_value(value):
            with self._condition:
                if guard['called']:
                    return
                guard['called'] = True
                if guard['running']:
                    guard['value'] = value
                    return
            self._resolve(value)

        def on_reason(reason):
            with self._condition:
                if guard['called']:
                    return
                guard['called'] = True
            self._fail(reason)

        try:
            then(on_value, on_reason)
        except Exception as error:
            with self._condition:
                already_called = guard['called']
                guard['called'] = True
            if not already_called:
                self._fail(error)

        with self._condition:
            guard['running'] = False
            return guard['value']

    def _fulfil(self, value):
        self._settle(self.FULFILLED, value)

    def _fail(self, reason):
        self._settle(self.REJECTED, reason)

    def _settle(self, state, outcome):
        """Make the unique transition, then drain the subscribers.

        The subscribers are called in the order of registration. The queue is
        released after the drain.
        """
        with self._condition:
            if self._state != self.PENDING:
                return self._log_ignored(state, outcome)

            if state == self.REJECTED and \
                    not isinstance(outcome, BaseException):
                _logger.debug('Deferred %s rejected with non-exception '
                              'value: %r', self._name, outcome)
            self._outcome = outcome
            self._state = state
            self._condition.notify_all()

            subscribers = self._subscribers
            # Free the references
            self._subscribers = None

            _logger.debug('%s settled', self)
            index = 0 if state == self.FULFILLED else 1
            for subscriber in subscribers:
                subscriber[index](outcome)

    def _subscribe(self, on_fulfilled, on_rejected):
        """Register a pair of callbacks, called when the Deferred settles.

        If the Deferred is already settled, the matching callback is called
        immediately.
        """
        with self._condition:
            if self._state == self.PENDING:
                self._subscribers.append((on_fulfilled, on_rejected))
            elif self._state == self.FULFILLED:
                on_fulfilled(self._outcome)
            else:
                on_rejected(self._outcome)

    def _log_ignored(self, state, outcome):
        if config.get('log_ignored_settlements'):
            _logger.warning('Try to settle Deferred %s already settled or '
                            'resolved. New %s will be ignored: %r', self,
                            'value' if state == self.FULFILLED else 'reason',
                            outcome)
