# -*- coding: utf-8 -*-


def is_thenable(value):
    """Check if an object can be chained, like a Deferred, or is a "result".

    The deferred module uses this function to differentiate "chainable"
    objects and direct values, when resolving a Deferred with a value who can
    be both. The check is structural: no inheritance is required.

    Note that reading the attribute 'then' may have side effects, and may
    raise an exception. Such exception is not caught.

    Returns:
        boolean: True if the value has an attribute 'then' who is callable.
            False if not.
    """
    return hasattr(getattr(value, 'then', None), '__call__')
