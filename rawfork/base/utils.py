# Licensed under the GPLv3 - see LICENSE
from concurrent.futures import ThreadPoolExecutor

from astropy.utils import classproperty


__all__ = ['fixedvalue', 'ceil_div', 'map_ordered']


class fixedvalue(classproperty):
    """Property that is fixed for all instances of a class.

    Based on `astropy.utils.decorators.classproperty`, but with
    a setter that passes if the value is identical to the fixed
    value, and otherwise raises a `ValueError`.
    """
    def __set__(self, instance, value):
        fixed_value = self.__get__(instance, type(instance))
        if value != fixed_value:
            raise ValueError('fixed property can only be set to {}.'
                             .format(fixed_value))


def ceil_div(a, b):
    """Integer division of a by b, rounding up."""
    return -(-a // b)


def map_ordered(function, iterable, max_workers=None):
    """Apply function to all items, returning results in input order.

    Parameters
    ----------
    function : callable
        Applied to each item.
    iterable : iterable
        Items to process.
    max_workers : int, optional
        If larger than 1, the items are processed by a thread pool with
        that many workers.  Default: process sequentially.

    Returns
    -------
    results : list
        With ``results[i] == function(items[i])``.  Any exception raised
        by ``function`` is propagated.
    """
    if max_workers is None or max_workers <= 1:
        return [function(item) for item in iterable]

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(function, iterable))
