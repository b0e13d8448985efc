# Licensed under the GPLv3 - see LICENSE
"""
Base definitions for payloads.

Defines a payload class PayloadBase that can be used to hold the encoded
bytes of a block, providing access to the decoded bytes.
"""
import numpy as np


__all__ = ['PayloadBase']


class PayloadBase:
    """Container for decoding and encoding payloads.

    Any subclass should define ``_encode`` and ``_decode`` methods, which
    turn decoded bytes into payload words and vice versa.

    Parameters
    ----------
    words : `~numpy.ndarray`
        Array containing the encoded bytes.
    verify : bool, optional
        Whether to do basic verification of integrity.  Default: `True`.
    """
    _dtype_word = np.dtype('u1')
    """Default type for encoded data: unsigned bytes."""

    def __init__(self, words, verify=True):
        self.words = words
        if verify:
            self.verify()

    def verify(self):
        """Check that the encoded words have the right type.

        Subclasses can override this to do more thorough checks.
        """
        if self.words.dtype != self._dtype_word:
            raise ValueError("encoded data should have dtype {0}"
                             .format(self._dtype_word))

    @classmethod
    def fromfile(cls, fh, nbytes, **kwargs):
        """Read payload from filehandle.

        Parameters
        ----------
        fh : filehandle
            From which data is read.
        nbytes : int
            Number of bytes to read.

        Any other (keyword) arguments are passed on to the class initialiser.
        """
        s = fh.read(nbytes)
        if len(s) < nbytes:
            raise EOFError("could not read full payload.")
        return cls(np.frombuffer(s, dtype=cls._dtype_word), **kwargs)

    def tofile(self, fh):
        """Write payload to filehandle."""
        return fh.write(self.words.tobytes())

    @classmethod
    def fromdata(cls, data, **kwargs):
        """Encode data as a payload.

        Parameters
        ----------
        data : bytes-like
            Data to be encoded.
        **kwargs
            Any other arguments to pass on to the encoder.
        """
        return cls(np.frombuffer(cls._encode(data, **kwargs),
                                 dtype=cls._dtype_word))

    @classmethod
    def _encode(cls, data, **kwargs):
        raise NotImplementedError

    def _decode(self, words):
        raise NotImplementedError

    @property
    def nbytes(self):
        """Size of the payload in bytes."""
        return self.words.nbytes

    @property
    def data(self):
        """Full decoded payload."""
        return self._decode(self.words)

    def __eq__(self, other):
        return (type(self) is type(other)
                and self.nbytes == other.nbytes
                and (self.words is other.words
                     or np.all(self.words == other.words)))
