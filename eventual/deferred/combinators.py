# -*- coding: utf-8 -*-
"""Functions who compose a group of Deferred into a single one.

All the functions accept a sequence of entries. An entry can be a Deferred,
a foreign thenable, or any other value (who is considered as an already
fulfilled Deferred). Entries are normalized using ``Deferred.resolve()``.

The functions only use the public interface of the Deferred.
"""

from collections import namedtuple
from functools import partial
from threading import Lock

from .deferred import Deferred


class Outcome(namedtuple('Outcome', ['state', 'value', 'reason'])):
    """Final state of a settled Deferred, as reported by ``all_settled()``.

    Attributes:
        state (str): ``Deferred.FULFILLED`` or ``Deferred.REJECTED``.
        value: fulfillment value; None if rejected.
        reason: rejection reason; None if fulfilled.
    """
    __slots__ = ()

    @classmethod
    def fulfilled(cls, value):
        return cls(Deferred.FULFILLED, value, None)

    @classmethod
    def rejected(cls, reason):
        return cls(Deferred.REJECTED, None, reason)


def _normalize(entries, scheduler):
    return [Deferred.resolve(entry, scheduler=scheduler) for entry in entries]


def all_succeed(entries, scheduler=None):
    """Create a Deferred who waits a list of entries to be all fulfilled.

    The resulting Deferred resolves when all of the entries are fulfilled,
    and returns a list of all the resulting values, keeping the order of the
    entries.
    If an entry is rejected, then the resulting Deferred is rejected with the
    same reason, and all results from other entries are ignored. The other
    entries are not stopped.

    Args:
        entries (iterable): Deferred, thenables or values.
        scheduler (Scheduler, optional)
    Returns:
        Deferred<list>: fulfilled when all entries are fulfilled, or rejected
            as soon as one of the entries is rejected. Fulfilled at once with
            an empty list if there is no entry.
    """
    deferreds = _normalize(entries, scheduler)
    if not deferreds:
        return Deferred.resolve([], scheduler=scheduler)

    lock = Lock()
    remaining_tasks = [len(deferreds)]
    results = [None] * len(deferreds)

    def setup(resolve, fail):
        def resolve_one(index, value):
            with lock:
                results[index] = value
                remaining_tasks[0] -= 1
                is_last = remaining_tasks[0] == 0
            if is_last:
                resolve(list(results))

        for index, d in enumerate(deferreds):
            d.then(partial(resolve_one, index), fail)

    return Deferred(setup, scheduler=scheduler, _name='ALL')


def first_settled(entries, scheduler=None):
    """Settle with the outcome of the first entry to settle.

    The resulting Deferred is fulfilled or rejected as soon as one of the
    entries is settled. Value or rejection reason of the first settled entry
    are transmitted. All others outcomes are ignored.

    Args:
        entries (iterable): Deferred, thenables or values.
        scheduler (Scheduler, optional)
    Returns:
        Deferred: a new Deferred. If there is no entry, it never settles.
    """
    deferreds = _normalize(entries, scheduler)

    def setup(resolve, fail):
        for d in deferreds:
            d.then(resolve, fail)

    return Deferred(setup, scheduler=scheduler, _name='RACE')


def all_settled(entries, scheduler=None):
    """Create a Deferred who waits for all the entries to be settled.

    The resulting Deferred is never rejected.

    Args:
        entries (iterable): Deferred, thenables or values.
        scheduler (Scheduler, optional)
    Returns:
        Deferred<list of Outcome>: fulfilled when all entries are settled, with
            one Outcome per entry, in the same order.
    """
    deferreds = _normalize(entries, scheduler)
    if not deferreds:
        return Deferred.resolve([], scheduler=scheduler)

    lock = Lock()
    remaining_tasks = [len(deferreds)]
    results = [None] * len(deferreds)

    def setup(resolve, fail):
        def settle_one(index, outcome):
            with lock:
                results[index] = outcome
                remaining_tasks[0] -= 1
                is_last = remaining_tasks[0] == 0
            if is_last:
                resolve(list(results))

        def on_value(index, value):
            settle_one(index, Outcome.fulfilled(value))

        def on_reason(index, reason):
            settle_one(index, Outcome.rejected(reason))

        for index, d in enumerate(deferreds):
            d.then(partial(on_value, index), partial(on_reason, index))

    return Deferred(setup, scheduler=scheduler, _name='ALL_SETTLED')
