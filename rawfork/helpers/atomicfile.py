# Licensed under the GPLv3 - see LICENSE
"""Writing files such that they appear only once complete.

Data are written to a temporary file in the target directory, which
replaces the target only if writing succeeded; on any failure the
temporary file is removed, so no partial output is left behind.
"""
import os
import tempfile
from contextlib import contextmanager


__all__ = ['atomic_open']


def _target_mode(name):
    """Permission bits the file written to ``name`` should get.

    Those of an existing file are kept; a new file gets what a plain
    ``open`` would give, i.e., 0o666 with the umask applied.
    """
    try:
        return os.stat(name).st_mode & 0o7777
    except FileNotFoundError:
        # The umask can only be read by setting it.
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


@contextmanager
def atomic_open(name):
    """Open a file for binary writing, committing it on success.

    To be used as part of a ``with`` statement::

        with atomic_open('recovered.raw') as fh:
            fh.write(data)

    Parameters
    ----------
    name : str or path-like
        Name of the file to be written.  Any existing file is replaced
        only once the ``with-block`` finishes without an exception, and
        its permissions are kept.  A new file gets the usual permissions
        for the current umask (rather than the owner-only ones of a
        temporary file).

    Raises
    ------
    OSError
        If the temporary file cannot be created, written, or moved into
        place.
    """
    name = os.path.abspath(os.fspath(name))
    fd, tmp_name = tempfile.mkstemp(prefix=os.path.basename(name) + '.',
                                    dir=os.path.dirname(name))
    try:
        with os.fdopen(fd, 'wb') as fh:
            yield fh
            fh.flush()
            os.fsync(fh.fileno())
        os.chmod(tmp_name, _target_mode(name))
        os.replace(tmp_name, name)
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
