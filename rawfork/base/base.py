# Licensed under the GPLv3 - see LICENSE
"""Wrappers that give binary files blob-specific methods.

`~rawfork.base.base.FileBase` wraps a binary filehandle; subclasses add
methods like ``read_header`` or ``write_original``.  A wrapper of a named
file opened for reading can be pickled, in which case the file is opened
again on unpickling.

`~rawfork.base.base.FileOpener` and `~rawfork.base.base.FileInfo` turn a
pair of reader and writer classes into the module-level ``open`` and
``info`` functions.

The exceptions raised when embedding or extracting fails live here too.
"""
import io
import functools
import textwrap
from contextlib import contextmanager

from .file_info import NoInfo


__all__ = ['SourceReadError', 'CompressionFailure', 'BlobCorrupt',
           'SinkWriteError', 'FileBase', 'FileInfo', 'FileOpener']


class SourceReadError(OSError):
    """Error in reading the file to be embedded, e.g., if it is truncated."""
    pass


class CompressionFailure(RuntimeError):
    """Error in compressing a block to a complete stream."""
    pass


class BlobCorrupt(ValueError):
    """Error in the layout or content of an encoded blob."""
    pass


class SinkWriteError(OSError):
    """Error in writing recovered data to their destination."""
    pass


def _find_format(ns):
    """Infer the format name from a ``<fmt>FileReader`` in a namespace."""
    for key in ns:
        if key.endswith('FileReader'):
            return key[:-len('FileReader')]

    raise ValueError('namespace does not contain a FileReader, '
                     'so fmt cannot be guessed.')


def _wrap_call(instance, name, module=None, doc=None):
    """Turn a callable instance into a plain function.

    The function gets the given name, and, if given, docstring and module,
    so that it shows up properly in documentation.
    """
    @functools.wraps(instance.__call__)
    def wrapper(*args, **kwargs):
        return instance(*args, **kwargs)

    wrapper.__name__ = wrapper.__qualname__ = name
    if doc:
        wrapper.__doc__ = doc
    if module:
        wrapper.__module__ = module
    return wrapper


class FileBase:
    """Wrapper adding blob methods to a binary filehandle.

    Attributes not defined on the wrapper are looked up on the underlying
    filehandle, ``fh_raw``, so the wrapper can be read, written and sought
    like the file itself.

    Parameters
    ----------
    fh_raw : filehandle
        Binary filehandle to wrap.
    """
    fh_raw = None

    def __init__(self, fh_raw):
        self.fh_raw = fh_raw

    def __getattr__(self, attr):
        if not attr.startswith('_'):
            try:
                return getattr(self.fh_raw, attr)
            except AttributeError:
                pass
        # Raise the usual error for a missing attribute.
        return self.__getattribute__(attr)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        self.fh_raw.close()

    @contextmanager
    def temporary_offset(self, offset=None, whence=0):
        """Seek elsewhere for the duration of a ``with`` block.

        The file position is restored on exit, also if an exception was
        raised::

            with fh.temporary_offset(header.data_nbytes):
                trailer = BlobTrailer.fromfile(fh.fh_raw)

        Parameters
        ----------
        offset : int, optional
            Where to seek to on entry.  Default: stay at the current position.
        whence : int, optional
            As for :meth:`io.IOBase.seek`.
        """
        oldpos = self.tell()
        try:
            if offset is not None:
                self.seek(offset, whence)
            yield self
        finally:
            self.seek(oldpos)

    def __repr__(self):
        return f"{self.__class__.__name__}(fh_raw={self.fh_raw})"

    def __getstate__(self):
        if self.writable():
            raise TypeError('cannot pickle file opened for writing')

        state = self.__dict__.copy()
        fh = state.pop('fh_raw')
        if not hasattr(fh, 'name'):
            raise TypeError('cannot pickle an in-memory file')
        # Store how to reopen the file, since filehandles cannot be pickled.
        state['fh_info'] = (fh.name, fh.mode,
                            None if fh.closed else fh.tell())
        return state

    def __setstate__(self, state):
        name, mode, offset = state.pop('fh_info')
        fh = io.open(name, mode)
        if offset is None:
            fh.close()
        else:
            fh.seek(offset)
        state['fh_raw'] = fh
        self.__dict__.update(state)


class FileInfo:
    """Collector of information on files of a given format.

    Parameters
    ----------
    opener : callable
        Used to open files, like the ``open`` function of a format.

    Notes
    -----
    Generally used via `~rawfork.base.base.FileInfo.create`, which wraps
    an instance as a module-level ``info`` function.
    """

    def __init__(self, opener):
        self.open = opener

    def __call__(self, name):
        """
        Collect blob file information.

        Parameters
        ----------
        name : str or filehandle
            File to be opened for reading in binary mode.

        Returns
        -------
        info : `~rawfork.base.file_info.FileReaderInfo`
            Information on the file, which evaluates as `False` if the
            file is not in the right format.  If the file could not be
            opened at all, a `~rawfork.base.file_info.NoInfo` instance.

        Notes
        -----
        This never raises.  Problems with the file are reported in the
        ``errors`` and ``warnings`` attributes.
        """
        try:
            with self.open(name, mode='rb') as fh:
                return fh.info
        except Exception as exc:
            return NoInfo(f"opening {name} raised {exc!r}.")

    def wrapped(self, module=None, doc=None):
        """Wrap as a function named info, replacing docstring and module."""
        return _wrap_call(self, 'info', module=module, doc=doc)

    @classmethod
    def create(cls, ns):
        """Create an ``info`` function for the format defined in ``ns``.

        Parameters
        ----------
        ns : dict
            Namespace holding an ``open`` function and a ``<fmt>FileReader``
            class.  Generally, pass in ``globals()`` at the call site.
        """
        fmt = _find_format(ns)
        info = cls(ns['open'])
        doc = textwrap.dedent(info.__call__.__doc__).replace(
            'Collect blob file', f'Collect {fmt} file')
        return info.wrapped(module=ns.get('__name__'), doc=doc)


class FileOpener:
    """Opener of files of a given format.

    Parameters
    ----------
    fmt : str
        Name of the format.
    classes : dict
        With the file reader and writer classes keyed by mode,
        i.e., 'rb' and 'wb'.

    Notes
    -----
    Generally used via `~rawfork.base.base.FileOpener.create`, which wraps
    an instance as a module-level ``open`` function.
    """

    def __init__(self, fmt, classes):
        self.fmt = fmt
        self.classes = classes

    def normalize_mode(self, mode):
        """Turn 'r', 'br', etc., into one of the supported modes."""
        for candidate in (mode, mode[::-1], mode + 'b'):
            if candidate in self.classes:
                return candidate

        raise ValueError(f'invalid mode: {mode} '
                         f'({self.fmt} supports {set(self.classes)}).')

    def is_fh(self, name):
        """Whether name is a filehandle."""
        return hasattr(name, 'read') or hasattr(name, 'write')

    def get_fh(self, name, mode):
        """Ensure name is a filehandle, opening it if necessary."""
        if self.is_fh(name):
            return name

        return io.open(name, mode=mode.replace('w', 'w+'))

    def __call__(self, name, mode='rb', **kwargs):
        """
        Open blob file for reading or writing.

        One gets a wrapped binary filehandle with additional methods to
        read or write headers, blocks and complete blobs.

        Parameters
        ----------
        name : str or filehandle
            File name or filehandle.
        mode : {'rb', 'wb'}, optional
            Whether to open for reading or writing.  Default: 'rb'.
        **kwargs
            Additional arguments passed on to the file reader or writer.
        """
        mode = self.normalize_mode(mode)
        fh = self.get_fh(name, mode)
        try:
            return self.classes[mode](fh, **kwargs)
        except Exception:
            # Only close what we opened ourselves.
            if fh is not name:
                fh.close()
            raise

    def wrapped(self, module=None, doc=None):
        """Wrap as a function named open, replacing docstring and module."""
        return _wrap_call(self, 'open', module=module, doc=doc)

    @classmethod
    def create(cls, ns, doc=None):
        """Create an ``open`` function for the format defined in ``ns``.

        Parameters
        ----------
        ns : dict
            Namespace holding ``<fmt>FileReader`` and ``<fmt>FileWriter``
            classes.  Generally, pass in ``globals()`` at the call site.
        doc : str, optional
            Extra documentation to add to that of the opener's ``__call__``
            method.
        """
        fmt = _find_format(ns)
        opener = cls(fmt, {'rb': ns[fmt + 'FileReader'],
                           'wb': ns[fmt + 'FileWriter']})
        doc = textwrap.dedent(opener.__call__.__doc__).replace(
            'Open blob file', f'Open {fmt} file') + (doc or '')
        return opener.wrapped(module=ns.get('__name__'), doc=doc)
