# -*- coding: utf-8 -*-
"""Schedulers running the continuations of Deferred objects.

A scheduler is the only environmental dependency of a Deferred. It must
provide ``schedule_soon(fn)``: ``fn`` will be called after the current
synchronous code returns, before any timer callback (``call_later()``), and
callbacks scheduled this way are called in submission order.

Three implementations are available:

- ``LoopScheduler``: cooperative loop running in the caller thread. Nothing
  happens until the owner calls ``run()``, ``run_soon()`` or ``advance()``.
  Timers use a virtual clock, so it's well suited for tests.
- ``ThreadScheduler``: a dedicated worker thread consumes the callbacks.
- ``AsyncioScheduler``: delegates to an asyncio event loop.

The default scheduler, used by all Deferred created without explicit
scheduler, is built on first use from the ``default_scheduler`` config entry.
"""

import collections
import heapq
import itertools
import logging
import threading

from .common import config

_logger = logging.getLogger(__name__)


class Scheduler(object):
    """Base class of the schedulers."""

    def schedule_soon(self, fn):
        """Call ``fn`` (without argument) as soon as possible, but not now.

        Args:
            fn (callable): callback. Its returned value is ignored.
        """
        raise NotImplementedError()

    def call_later(self, delay, fn):
        """Call ``fn`` after ``delay`` seconds.

        Timer callbacks always run after the callbacks scheduled by
        ``schedule_soon()`` at the same time.

        Args:
            delay (float): number of seconds.
            fn (callable): callback. Its returned value is ignored.
        """
        raise NotImplementedError()

    @staticmethod
    def _run_callback(fn):
        try:
            fn()
        except Exception:
            _logger.exception('Scheduled callback %r has raised an error', fn)


class LoopScheduler(Scheduler):
    """Cooperative scheduler, running callbacks in the thread of its owner.

    The clock is virtual: it starts at 0 and moves only when timers are
    fired by ``run()`` or ``advance()``. ``run()`` never sleeps.

    ``schedule_soon()`` and ``call_later()`` are thread-safe, but the loop
    itself must be run by only one thread.

    Attributes:
        time (float): current value of the virtual clock, in seconds.
    """

    def __init__(self):
        self.time = 0.0
        self._lock = threading.Lock()
        self._soon = collections.deque()
        self._timers = []
        self._timer_seq = itertools.count()

    def schedule_soon(self, fn):
        with self._lock:
            self._soon.append(fn)

    def call_later(self, delay, fn):
        with self._lock:
            deadline = self.time + max(delay, 0)
            heapq.heappush(self._timers,
                           (deadline, next(self._timer_seq), fn))

    def run_soon(self):
        """Run all the "soon" callbacks, until the queue is empty.

        Callbacks scheduled during the run are also executed.

        Returns:
            int: number of callbacks executed.
        """
        count = 0
        while True:
            with self._lock:
                if not self._soon:
                    return count
                fn = self._soon.popleft()
            self._run_callback(fn)
            count += 1

    def advance(self, seconds):
        """Move the clock forward, and fire all timers due in the meantime.

        Each timer callback is followed by a full run of the "soon" queue.
        """
        target = self.time + seconds
        self.run_soon()
        while self._fire_next_timer(target):
            self.run_soon()
        self.time = max(self.time, target)

    def run(self):
        """Run callbacks and timers until there is nothing left to run."""
        self.run_soon()
        while self._fire_next_timer():
            self.run_soon()

    def is_idle(self):
        """Returns True if there is no callback nor timer waiting."""
        with self._lock:
            return not self._soon and not self._timers

    def _fire_next_timer(self, limit=None):
        with self._lock:
            if not self._timers:
                return False
            if limit is not None and self._timers[0][0] > limit:
                return False
            deadline, _seq, fn = heapq.heappop(self._timers)
            self.time = max(self.time, deadline)
        self._run_callback(fn)
        return True


class SharedContext(object):
    """Thread-safe context shared between the scheduler and its worker.

    Instances of SharedContext are context managers:
    `with context:` is a sugar syntax shortcut for `with context.condition`.

    Attributes:
        condition (Condition)
        stop_order (boolean): if True, the worker should stop immediately.
        queue (deque): callbacks waiting to be executed.
    """

    def __init__(self):
        self.condition = threading.Condition()
        self.stop_order = False
        self.queue = collections.deque()

    def __enter__(self):
        self.condition.__enter__()
        return self

    def __exit__(self, _type, _value, _tb):
        return self.condition.__exit__(_type, _value, _tb)


class ThreadScheduler(Scheduler):
    """Scheduler using a dedicated worker thread.

    There is exactly one worker, so callbacks are executed one at a time, in
    the submission order. The worker is a daemon thread: a running scheduler
    never prevents the interpreter to exit.

    Callbacks submitted before ``start()`` are kept and executed once the
    worker is started.
    """

    def __init__(self, name='scheduler'):
        """
        Args:
            name (str): name of the worker. eg: 'scheduler'.
        """
        self.context = SharedContext()
        self._name = name
        self._last_worker_id = 0
        self._thread = None
        self._timers = set()

    def start(self):
        """Start the worker thread."""
        with self.context:
            self.context.stop_order = False
            if self._thread is not None and self._thread.is_alive():
                return self

            _logger.debug('Start scheduler "%s"', self._name)
            self._last_worker_id += 1
            self._thread = threading.Thread(
                target=self._run_worker,
                name='Worker %s #%s' % (self._name, self._last_worker_id))
            self._thread.daemon = True
            self._thread.start()
        return self

    def stop(self):
        """Stop the worker, and cancel the timers.

        Returns only when the worker thread is joined. The callbacks still in
        the queue are dropped.
        """
        _logger.debug('Stop scheduler "%s"', self._name)
        with self.context:
            self.context.stop_order = True
            self.context.condition.notify_all()
            timers = list(self._timers)
            self._timers.clear()
            thread = self._thread
        for timer in timers:
            timer.cancel()
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        with self.context:
            if self.context.queue:
                _logger.debug('%s callbacks dropped by the scheduler "%s"',
                              len(self.context.queue), self._name)
                self.context.queue.clear()

    def __enter__(self):
        return self.start()

    def __exit__(self, _type, _value, _tb):
        self.stop()

    def schedule_soon(self, fn):
        with self.context:
            self.context.queue.append(fn)
            self.context.condition.notify()

    def call_later(self, delay, fn):
        def on_timeout():
            with self.context:
                self._timers.discard(timer)
            self.schedule_soon(fn)

        timer = threading.Timer(max(delay, 0), on_timeout)
        timer.daemon = True
        with self.context:
            self._timers.add(timer)
        timer.start()

    def _run_worker(self):
        """Entry point of the worker thread."""
        while True:
            with self.context:
                while not self.context.queue and not self.context.stop_order:
                    self.context.condition.wait()
                if self.context.stop_order:
                    return
                fn = self.context.queue.popleft()
            self._run_callback(fn)


class AsyncioScheduler(Scheduler):
    """Scheduler delegating the callbacks to an asyncio event loop."""

    def __init__(self, loop):
        self._loop = loop

    def schedule_soon(self, fn):
        self._loop.call_soon_threadsafe(self._run_callback, fn)

    def call_later(self, delay, fn):
        self._loop.call_later(delay, self._run_callback, fn)


_default_scheduler = None
_default_scheduler_lock = threading.Lock()


def create_scheduler(kind):
    """Build a scheduler from its configuration name.

    Args:
        kind (str): 'thread' or 'loop'.
    Returns:
        Scheduler: a new scheduler. A ThreadScheduler is already started.
    Raises:
        ValueError: if ``kind`` is unknown.
    """
    if kind == 'thread':
        return ThreadScheduler(name='default').start()
    elif kind == 'loop':
        return LoopScheduler()
    raise ValueError('Unknown scheduler kind: %r' % kind)


def get_default_scheduler():
    """Returns the default scheduler, creating it if needed."""
    global _default_scheduler

    with _default_scheduler_lock:
        if _default_scheduler is None:
            _default_scheduler = create_scheduler(
                config.get('default_scheduler'))
            _logger.debug('Default scheduler is %r', _default_scheduler)
        return _default_scheduler


def set_default_scheduler(scheduler):
    """Replace the default scheduler.

    The previous scheduler is not stopped.

    Args:
        scheduler (Scheduler): new default scheduler. If None, a new one will
            be created from the config at next use.
    Returns:
        Scheduler: the previous default scheduler, or None.
    """
    global _default_scheduler

    with _default_scheduler_lock:
        previous = _default_scheduler
        _default_scheduler = scheduler
    return previous
