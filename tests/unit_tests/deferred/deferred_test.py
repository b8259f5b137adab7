# -*- coding: utf-8 -*-

import logging
import threading
import pytest

from eventual.common import config
from eventual.deferred import Deferred, RejectionError, SelfResolutionError, \
    TimeoutError
from eventual.scheduler import ThreadScheduler


class Err(Exception):
    pass


class TestDeferred(object):

    def test_synchronous_fulfillment(self):
        """Make a Deferred fulfilled by a synchronous setup function."""

        def setup(resolve, fail):
            resolve(3)

        d = Deferred(setup)

        assert d.state == Deferred.FULFILLED
        assert d.is_fulfilled
        assert d.value == 3
        assert d.reason is None

    def test_synchronous_rejection(self):
        """Make a Deferred rejected by a synchronous setup function."""
        error = Err()

        def setup(resolve, fail):
            fail(error)

        d = Deferred(setup)

        assert d.is_rejected
        assert d.reason is error
        assert d.value is None

    def test_setup_raising_error(self):
        """Make a Deferred with a setup function raising an error."""

        def setup(resolve, fail):
            raise Err()

        d = Deferred(setup)
        assert isinstance(d.reason, Err)

    def test_setup_raising_error_after_resolution(self):
        """An error raised after the resolution has no effect."""

        def setup(resolve, fail):
            resolve('OK')
            raise Err()

        d = Deferred(setup)
        assert d.value == 'OK'

    def test_pending_without_settlement(self):
        d = Deferred(lambda resolve, fail: None)
        assert d.is_pending
        assert d.value is None
        assert d.reason is None

    def test_only_first_settlement_is_kept(self):
        """Second calls to resolve() or fail() are ignored."""
        _resolvers = []

        d = Deferred(lambda resolve, fail: _resolvers.extend([resolve, fail]))
        resolve, fail = _resolvers

        resolve(1)
        resolve(2)
        fail(Err())

        assert d.value == 1

    def test_only_first_rejection_is_kept(self):
        _resolvers = []

        d = Deferred(lambda resolve, fail: _resolvers.extend([resolve, fail]))
        resolve, fail = _resolvers

        first_error = Err('first')
        fail(first_error)
        fail(Err('second'))
        resolve(3)

        assert d.reason is first_error

    def test_ignored_settlement_is_logged_if_enabled(self, caplog,
                                                      monkeypatch):
        monkeypatch.setattr(config, 'get',
                            lambda key: key == 'log_ignored_settlements')
        caplog.set_level(logging.WARNING)
        _resolvers = []

        Deferred(lambda resolve, fail: _resolvers.extend([resolve, fail]))
        _resolvers[0](1)
        _resolvers[0](2)

        assert 'already settled' in caplog.text

    def test_ignored_settlement_is_silent_by_default(self, caplog):
        caplog.set_level(logging.WARNING)
        _resolvers = []

        Deferred(lambda resolve, fail: _resolvers.extend([resolve, fail]))
        _resolvers[0](1)
        _resolvers[1](Err())

        assert caplog.text == ''

    def test_subscribers_are_released_after_settlement(self):
        _resolvers = []

        d = Deferred(lambda resolve, fail: _resolvers.append(resolve))
        d.then(lambda v: v)
        assert len(d._subscribers) == 1

        _resolvers[0]('value')
        assert d._subscribers is None

    def test_repr(self):
        def double(value):
            return value * 2

        d = Deferred.resolve(2)
        assert repr(d) == 'Deferred(RESOLVE F)'
        assert repr(d.then(double)) == 'Deferred(RESOLVE F -> double P)'


class TestThenMethod(object):

    def test_then_is_never_synchronous(self, loop):
        """The callback of an already fulfilled Deferred is called later."""
        calls = []

        d = Deferred.resolve(2)
        d2 = d.then(calls.append)

        assert calls == []
        assert d2.is_pending

        loop.run()
        assert calls == [2]
        assert d2.is_fulfilled

    def test_then_on_fulfilled_deferred(self, loop):

        def _callback(arg):
            assert arg == 23
            return arg * 2

        d = Deferred(lambda ok, error: ok(23))
        d2 = d.then(_callback)
        loop.run()
        assert d2.value == 46
        assert d.value == 23

    def test_then_on_pending_deferred(self, loop):
        """Chain a callback on a Deferred fulfilled later."""
        _fulfill = []

        def _init(ok, error):
            _fulfill.append(ok)

        d = Deferred(_init)
        d2 = d.then(lambda arg: arg * 2)
        loop.run()
        assert d2.is_pending

        _fulfill[0](23)
        assert d2.is_pending  # The callback is not executed yet.
        loop.run()
        assert d2.value == 46

    def test_callbacks_follow_registration_order(self, loop):
        _fulfill = []
        calls = []

        d = Deferred(lambda ok, error: _fulfill.append(ok))
        for i in range(5):
            d.then(lambda value, i=i: calls.append(i))

        _fulfill[0]('go')
        assert calls == []

        loop.run()
        assert calls == [0, 1, 2, 3, 4]

    def test_late_callbacks_follow_registration_order(self, loop):
        calls = []

        d = Deferred.resolve('value')
        d.then(lambda v: calls.append(1))
        loop.run()
        d.then(lambda v: calls.append(2))
        d.then(lambda v: calls.append(3))
        assert calls == [1]

        loop.run()
        assert calls == [1, 2, 3]

    def test_long_chain(self, loop):
        d = Deferred.resolve(0)
        for _ in range(100):
            d = d.then(lambda v: v + 1)
        loop.run()
        assert d.value == 100

    def test_then_on_rejected_deferred(self, loop):
        """Chain a callback using then() to a Deferred raising an exception"""

        def _task(ok, error):
            raise Err()

        def _callback(__):
            assert not 'This should not be executed.'

        d = Deferred(_task)
        d2 = d.then(_callback)
        loop.run()
        assert d2.reason is d.reason

    def test_then_with_deferred_factory(self, loop):
        """Chain a Deferred factory, using then().

        a Deferred factory is a function who returns a Deferred.
        """

        def factory(value):
            return Deferred(lambda ok, error: ok(value * value))

        d = Deferred.resolve(6)
        d2 = d.then(factory)
        loop.run()
        assert d2.value == 36

    def test_then_with_rejected_deferred_factory(self, loop):
        error = Err()
        d2 = Deferred.resolve(6).then(lambda v: Deferred.reject(error))
        loop.run()
        assert d2.reason is error

    def test_callback_raising_error(self, loop):
        error = Err()

        def _callback(value):
            raise error

        d2 = Deferred.resolve(1).then(_callback)
        loop.run()
        assert d2.reason is error

    def test_then_with_error_callback_on_fulfilled_deferred(self, loop):
        """Only the success callback should be called."""
        def on_error(err):
            raise Exception('This should never be called!')

        d2 = Deferred.resolve(654).then(lambda value: value * 3, on_error)
        loop.run()
        assert d2.value == 1962

    def test_then_with_error_callback_on_rejected_deferred(self, loop):
        """Only the error callback should be called.

        The resulting Deferred will (successfully) resolve with the value
        returned by the error callback.
        """
        def on_success(value):
            raise Exception('This should never be called!')

        def on_error(err):
            assert type(err) is Err
            return 38

        d2 = Deferred.reject(Err()).then(on_success, on_error)
        loop.run()
        assert d2.value == 38

    def test_value_pass_through(self, loop):
        """Without success callback, the exact value is transmitted."""
        value = object()

        def on_error(err):
            raise Exception('This should never be called!')

        d2 = Deferred.resolve(value).then(None, on_error)
        loop.run()
        assert d2.value is value

    def test_reason_pass_through(self, loop):
        reason = Err()
        d2 = Deferred.reject(reason).then(lambda v: v).then(lambda v: v)
        loop.run()
        assert d2.reason is reason

    def test_non_callable_handlers_are_ignored(self, loop):
        d2 = Deferred.resolve(5).then(5, 'not a function')
        loop.run()
        assert d2.value == 5

    def test_chain_is_alias_of_then(self, loop):
        d2 = Deferred.resolve(2).chain(lambda v: v + 1)
        loop.run()
        assert d2.value == 3

    def test_catch_on_rejected_deferred(self, loop):
        d2 = Deferred.reject(Err()).catch(lambda err: 'recovered')
        loop.run()
        assert d2.value == 'recovered'

    def test_catch_on_fulfilled_deferred(self, loop):
        d2 = Deferred.resolve(185).catch(lambda err: 'recovered')
        loop.run()
        assert d2.value == 185

    def test_self_resolution_from_callback(self, loop):
        holder = []
        d = Deferred.resolve(1).then(lambda v: holder[0])
        holder.append(d)

        loop.run()
        assert isinstance(d.reason, SelfResolutionError)
        assert isinstance(d.reason, TypeError)

    def test_deferred_safe_guard(self, loop, caplog):
        """Use the safeguard() on a failing Deferred."""
        caplog.set_level(logging.ERROR)

        def in_deferred(a, b):
            raise Err('ERROR')

        d = Deferred(in_deferred)
        assert d.safeguard() is d

        loop.run()
        assert '[SAFEGUARD]' in caplog.text
        assert 'Err' in caplog.text

    def test_deferred_safe_guard_on_fulfilled_deferred(self, loop, caplog):
        caplog.set_level(logging.ERROR)
        Deferred.resolve(3).safeguard()
        loop.run()
        assert '[SAFEGUARD]' not in caplog.text


class TestFinallyRunMethod(object):

    def test_finally_on_fulfilled_deferred(self, loop):
        calls = []
        d2 = Deferred.resolve('value').finally_run(lambda: calls.append(1))
        assert calls == []

        loop.run()
        assert calls == [1]
        assert d2.value == 'value'

    def test_finally_on_rejected_deferred(self, loop):
        calls = []
        reason = Err()
        d2 = Deferred.reject(reason).finally_run(lambda: calls.append(1))

        loop.run()
        assert calls == [1]
        assert d2.reason is reason

    def test_finally_callback_raising_error(self, loop):
        """The new error takes precedence on the original outcome."""
        new_error = Err('new')

        def on_settled():
            raise new_error

        d_ok = Deferred.resolve('value').finally_run(on_settled)
        d_err = Deferred.reject(Err('original')).finally_run(on_settled)

        loop.run()
        assert d_ok.reason is new_error
        assert d_err.reason is new_error

    def test_finally_callback_returning_deferred(self, loop):
        """The outcome of the Deferred returned takes precedence."""
        d2 = Deferred.reject(Err()).finally_run(
            lambda: Deferred.resolve('other'))

        loop.run()
        assert d2.value == 'other'

    def test_finally_callback_returning_rejected_deferred(self, loop):
        reason = Err()
        d2 = Deferred.resolve('value').finally_run(
            lambda: Deferred.reject(reason))

        loop.run()
        assert d2.reason is reason


class TestStaticMethods(object):

    def test_resolve_value(self):
        d = Deferred.resolve('xyz')
        assert d.value == 'xyz'

    def test_resolve_deferred(self):
        """Use Deferred.resolve() on an object who is already a Deferred."""
        d = Deferred.resolve(33)
        assert Deferred.resolve(d) is d
        assert Deferred.resolve(Deferred.resolve(33)).value == 33

    def test_resolve_rejected_deferred(self):
        d = Deferred.reject(Err())
        assert Deferred.resolve(d) is d

    def test_reject_always_creates_new_deferred(self):
        reason = Err()
        d1 = Deferred.reject(reason)
        d2 = Deferred.reject(reason)
        assert d1 is not d2
        assert d1.reason is d2.reason is reason

    def test_reject_with_deferred_reason(self):
        """A Deferred reason is not unwrapped."""
        reason = Deferred.resolve(1)
        assert Deferred.reject(reason).reason is reason

    def test_resolve_with_scheduler(self):
        scheduler = ThreadScheduler()
        d = Deferred.resolve(1, scheduler=scheduler)
        assert d.scheduler is scheduler
        assert d.then(lambda v: v).scheduler is scheduler


class TestBlockingAccessors(object):

    def test_result_of_fulfilled_deferred(self):
        assert Deferred.resolve(3).result(0) == 3

    def test_result_of_pending_deferred(self):
        d = Deferred(lambda ok, error: None)
        with pytest.raises(TimeoutError):
            d.result(0)
        with pytest.raises(TimeoutError):
            d.exception(0.001)

    def test_result_of_rejected_deferred(self):
        d = Deferred.reject(Err())
        with pytest.raises(Err):
            d.result(0)

    def test_result_of_deferred_rejected_with_non_exception(self):
        d = Deferred.reject('boom')
        with pytest.raises(RejectionError) as exc_info:
            d.result(0)
        assert exc_info.value.reason == 'boom'

    def test_exception(self):
        reason = Err()
        assert Deferred.reject(reason).exception(0) is reason
        assert Deferred.resolve(1).exception(0) is None

    def test_result_with_thread_scheduler(self):
        """Wait for a Deferred settled by another thread."""
        def setup(ok, error):
            threading.Timer(0.001, ok, args=['OK']).start()

        with ThreadScheduler() as scheduler:
            d = Deferred(setup, scheduler=scheduler)
            d2 = d.then(lambda value: value + '!')
            assert d2.result(1) == 'OK!'
            assert d.result(0) == 'OK'

    def test_exception_with_thread_scheduler(self):
        with ThreadScheduler() as scheduler:
            d = Deferred.resolve(1, scheduler=scheduler)
            d2 = d.then(lambda value: 1 / 0)
            assert isinstance(d2.exception(1), ZeroDivisionError)
