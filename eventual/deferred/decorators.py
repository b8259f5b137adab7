# -*- coding: utf-8 -*-

from .deferred import Deferred


def wrap_deferred(f):
    """Decorator who converts the result in a Deferred object.

    If the function decorated returns a Deferred, it's transmitted as is.
    Else, a new Deferred is created with the returned value as result (a
    thenable is adopted). If the function raises an exception, the Deferred
    returned is rejected with it.
    """
    def wrapper(*args, **kwargs):
        try:
            return Deferred.resolve(f(*args, **kwargs))
        except Exception as error:
            return Deferred.reject(error)

    return wrapper
