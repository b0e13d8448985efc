# Licensed under the GPLv3 - see LICENSE
"""Descriptors providing standardized information on opened files.

Loosely based on `~astropy.utils.data_info.DataInfo`.  A reader's ``info``
attribute is an `~rawfork.base.file_info.InfoBase` instance, whose items
are evaluated lazily, never raise, and record any problems encountered.
"""
import copy
import operator
import warnings

from astropy import units as u


__all__ = ['info_item', 'InfoBase', 'FileReaderInfo', 'NoInfo']


class info_item:
    """Item of file information, evaluated only once.

    On first access, the value is calculated and stored on the instance,
    where it shadows the descriptor.  If calculating raises, the exception
    is stored in the instance's ``errors`` dict and ``default`` is used.

    Can be used as a decorator, with or without arguments.

    Parameters
    ----------
    fget : callable, optional
        Called with the info instance to calculate the value.  If not
        given, and ``needs`` is, the value is the attribute with the same
        name on the item needed (e.g., ``header0.fork_length``).
    needs : str or tuple of str
        Items that should not be `None` for the value to be calculated.
        If they are, ``default`` is used instead.
    default : value, optional
        Value used if the needs are not met, or the calculation failed or
        returned `None`.  Default: `None`.
    doc : str, optional
        Docstring.  By default, taken from ``fget``.
    copy : bool
        Whether to store a copy of the value, e.g., to give each instance
        its own ``errors`` dict.
    """
    fget = None
    name = None

    def __init__(self, fget=None, *, needs=(), default=None, doc=None,
                 copy=False):
        self.needs = (needs,) if isinstance(needs, str) else tuple(needs)
        self.default = default
        self.copy = copy
        if doc is not None:
            self.__doc__ = doc
        if fget is not None:
            self._set_fget(fget)

    def _set_fget(self, fget):
        self.fget = fget
        self.name = fget.__name__
        if fget.__doc__ is not None:
            self.__doc__ = fget.__doc__

    def __set_name__(self, owner, name):
        self.name = name
        if self.fget is None and self.needs:
            link = f"{self.needs[0]}.{name}"
            self.fget = operator.attrgetter(link)
            if self.__doc__ is info_item.__doc__:
                self.__doc__ = f"Link to {link.replace('_parent', 'parent')}."

    def __call__(self, fget):
        # Only possible when decorating, e.g., @info_item(needs='header0').
        if self.name is not None:
            raise TypeError(f"assigned {self.__class__.__name__!r} "
                            f"is not callable")
        self._set_fget(fget)
        return self

    def __get__(self, instance, cls=None):
        if instance is None:
            return self

        value = self.default
        if self.fget is not None and all(
                getattr(instance, need, None) is not None
                for need in self.needs):
            try:
                result = self.fget(instance)
            except Exception as exc:
                instance.errors[self.name] = exc
            else:
                if result is not None:
                    value = result

        if self.copy:
            value = copy.copy(value)
        instance.__dict__[self.name] = value
        return value

    def __str__(self):
        return f"{self.name}: {self.__doc__.strip().splitlines()[0]}"

    def __repr__(self):
        extra = [f"{attr}={getattr(self, attr)!r}"
                 for attr in ('needs', 'default', 'copy')
                 if getattr(self, attr)]
        extra = f" ({', '.join(extra)})" if extra else ''
        return f"<{self.__class__.__name__} {self}{extra}>"


class InfoBase:
    """Container of information on an opened file.

    Used as a descriptor on a file reader class: accessed on an instance,
    it creates (and caches) an instance bound to the reader, for which all
    items in ``attr_names`` are evaluated right away.  If the reader is
    closed or reopened, the information is collected anew.

    All access to the reader should go through
    `~rawfork.base.file_info.info_item`, so that errors are stored in
    ``errors`` rather than raised.  Warnings can be stored in ``warnings``.

    The instance evaluates as `True` if the file has the right format
    (though it may still be corrupt further on).

    Parameters
    ----------
    parent : instance, optional
        File reader the instance is bound to.  `None` for the class version.
    """

    attr_names = ()
    """Items the container provides."""

    _parent = None
    closed = info_item(needs='_parent', doc='Whether parent is closed')

    def __init__(self, parent=None):
        if parent is not None:
            self._parent = parent
            if not self.closed:
                for attr in self.attr_names:
                    getattr(self, attr)

    def _up_to_date(self):
        return self.closed == self._parent.closed

    def __get__(self, instance, owner_cls):
        if instance is None:
            return self

        info = instance.__dict__.get('info')
        if info is None or not info._up_to_date():
            info = instance.__dict__['info'] = self.__class__(parent=instance)

        return info

    def __delete__(self, instance):
        # Being a data descriptor ensures __get__ is always used.
        instance.__dict__.pop('info', None)

    def __bool__(self):
        return self.format is not None

    def __call__(self):
        """Create a dict with all items that are not `None` or empty."""
        info = {}
        for attr in self.attr_names:
            value = getattr(self, attr)
            if value is None or (isinstance(value, dict) and not value):
                continue
            info[attr] = value

        return info

    def __repr__(self):
        if self._parent is None:
            return '\n'.join(
                [f"{self.__class__.__name__} (unbound) with attributes:"]
                + [f"  {getattr(self.__class__, attr)}"
                   for attr in self.attr_names])

        if self.closed:
            return "File closed. Not parsable."

        result = [self._parent.__class__.__name__.replace('Reader', '')
                  + ' information:']
        for attr, value in self().items():
            if isinstance(value, dict):
                result.append(f"{attr}:")
                result.extend(f"  {key}: {str(val) or repr(val)}"
                              for key, val in value.items())
            else:
                result.append(f"{attr} = {value}")

        if not self:
            result.append('Not parsable. Wrong format?')

        return '\n'.join(result)


class FileReaderInfo(InfoBase):
    """Standardized information on file readers.

    Items are determined from the header at the start of the file
    (``info.header0``) and from checks of whether the file can be decoded.
    Subclasses add items specific to their format.
    """
    attr_names = ('format', 'readable', 'checks', 'errors', 'warnings')

    checks = info_item(default={}, copy=True,
                       doc='dict of checks for readability.')
    errors = info_item(default={}, copy=True,
                       doc='dict of items that raised errors.')
    warnings = info_item(default={}, copy=True,
                         doc='dict of items that gave warnings.')

    @info_item
    def header0(self):
        """Header at the start of the file."""
        # The file may not even have the right format, so all warnings
        # are suppressed; errors are stored by info_item.
        with self._parent.temporary_offset(0) as fh:
            with warnings.catch_warnings():
                warnings.simplefilter('ignore')
                return fh.read_header()

    @info_item(needs='header0')
    def format(self):
        """The file format."""
        return self._parent.__class__.__name__.split('File')[0].lower()

    @info_item(needs='header0')
    def file_nbytes(self):
        """Size of the file in bytes."""
        with self._parent.temporary_offset() as fh:
            return fh.seek(0, 2) * u.byte

    @info_item(needs='header0', default=False)
    def readable(self):
        """Whether all checks passed."""
        return all(bool(v) for v in self.checks.values())


class NoInfo:
    """Information for a file that could not be opened.

    Always evaluates as `False`.

    Parameters
    ----------
    info : str
        Explanation, shown by ``repr``.
    """
    def __init__(self, info=None):
        self.info = info

    def __bool__(self):
        return False

    def __repr__(self):
        return f"No Info: {self.info}"
