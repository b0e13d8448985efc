# Licensed under the GPLv3 - see LICENSE
"""
Base definitions for headers.

Defines a header class WordsHeaderBase that holds a sequence of unsigned
32-bit words, which subclasses interpret via properties.  The words are
kept in an immutable `~numpy.ndarray`, so that they can be written out
and compared directly.
"""
import numpy as np


__all__ = ['WordsHeaderBase']


class WordsHeaderBase:
    """Base class for headers consisting of unsigned 32-bit words.

    Generally, the actual class should define properties that interpret
    the words, as well as a ``verify`` method that checks their consistency.

    Parameters
    ----------
    words : tuple, list or `~numpy.ndarray` of int
        Header words.  These are copied into an immutable array.
    verify : bool, optional
        Whether to do basic verification of integrity.  Default: `True`.
    """
    _dtype_word = np.dtype('>u4')
    """Default for words: 32-bit unsigned integers, big-endian."""

    def __init__(self, words, verify=True):
        words = np.array(words, dtype=self._dtype_word)
        words.flags.writeable = False
        self.words = words
        if verify:
            self.verify()

    def verify(self):
        """Verify that the words form a one-dimensional array.

        Subclasses should override this to do more thorough checks.
        """
        assert self.words.ndim == 1

    @property
    def nbytes(self):
        """Size of the header in bytes."""
        return self.words.nbytes

    @classmethod
    def _check_words(cls, words):
        """Check that the values can all be encoded as header words."""
        limit = 1 << (8 * cls._dtype_word.itemsize)
        for word in words:
            if not 0 <= word < limit:
                raise ValueError(f"{word} cannot be represented with "
                                 f"{8 * cls._dtype_word.itemsize} bits.")
        return words

    @classmethod
    def _read_words(cls, fh, nwords):
        """Read a number of words from a filehandle.

        Raises `EOFError` if fewer bytes were available.
        """
        nbytes = nwords * cls._dtype_word.itemsize
        s = fh.read(nbytes)
        if len(s) != nbytes:
            raise EOFError(f"could only read {len(s)} out of {nbytes} bytes.")
        return np.frombuffer(s, dtype=cls._dtype_word)

    def tofile(self, fh):
        """Write header words to filehandle."""
        return fh.write(self.words.tobytes())

    def copy(self):
        """Create a copy of the header."""
        return self.__class__(self.words, verify=False)

    def __len__(self):
        return len(self.words)

    def __eq__(self, other):
        return (type(self) is type(other)
                and self.words.shape == other.words.shape
                and np.all(self.words == other.words))

    def __repr__(self):
        name = self.__class__.__name__
        return "<{} words: {}>".format(name, self.words.tolist())
