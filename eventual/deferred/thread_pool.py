# -*- coding: utf-8 -*-

from concurrent.futures import ThreadPoolExecutor as Executor
from .deferred import Deferred


class ThreadPoolExecutor(object):
    """Execute callables asynchronously on demand, in another threads."""

    def __init__(self, max_workers, scheduler=None):
        """Initialize the thread pool

        Args:
            max_workers: The maximum number of threads that can be used to
                execute the given calls.
            scheduler (Scheduler, optional): scheduler of the Deferred
                returned by ``submit()``.
        """
        self._executor = Executor(max_workers)
        self._scheduler = scheduler

    def submit(self, callback, *args, **kwargs):
        """Schedule the callable to be executed and return a Deferred.

        Args:
            callback (callable): callback who will run in another thread.
            *args: argument passed to callback.
            **kwargs: keywords arguments passed to callback.
        Returns:
            Deferred: Deferred who resolves after the callback has been
                executed. It's fulfilled with the value returned by the
                callback. If the callback raise an exception, the Deferred is
                rejected with this exception.
        """
        def setup(resolve, fail):
            def on_future_done(f):
                try:
                    resolve(f.result())
                except BaseException as error:
                    fail(error)

            f = self._executor.submit(callback, *args, **kwargs)
            f.add_done_callback(on_future_done)

        return Deferred(setup, scheduler=self._scheduler,
                        _name=getattr(callback, '__name__', '???'))

    def shutdown(self, wait=True):
        """Free the threads. No new callable can be submitted after."""
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, _type, _value, _tb):
        self.shutdown()
