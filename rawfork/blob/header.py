# Licensed under the GPLv3 - see LICENSE
"""
Definitions for the header and trailer of original-file blobs.

The header consists of the length of the original file, followed by a
table of offsets into the blob.  All are big-endian unsigned 32-bit words::

    offset 0:                        fork_length
    offset 4:                        offsets[0] = 8 + 4 * block_count
    offset 8:                        offsets[1:block_count+1]
    offset offsets[0]:               compressed blocks
    offset offsets[block_count]:     7 reserved zero words (the trailer)

Here, ``block_count = ceil(fork_length / BLOCK_SIZE)``, and block ``i``
occupies the bytes ``offsets[i]:offsets[i+1]``.
"""
import warnings

import numpy as np
from astropy.utils import lazyproperty

from ..base.base import BlobCorrupt
from ..base.header import WordsHeaderBase
from ..base.utils import ceil_div, fixedvalue


__all__ = ['BLOCK_SIZE', 'TRAILER_WORDS', 'MAX_FORK_LENGTH',
           'BlobHeader', 'BlobTrailer']


BLOCK_SIZE = 65536
"""Number of original bytes encoded in each (but the last) block."""
TRAILER_WORDS = 7
"""Number of reserved words after the last block."""
MAX_FORK_LENGTH = (1 << 32) - 1
"""Largest original file that can be described by the header."""


class BlobHeader(WordsHeaderBase):
    """Header of a blob holding an embedded original file.

    Parameters
    ----------
    words : tuple, list or `~numpy.ndarray` of int
        Header words: the original file length followed by the offsets.
    verify : bool, optional
        Whether to do basic verification of integrity.  Default: `True`.

    Returns
    -------
    header : `BlobHeader`
        An immutable header.

    Notes
    -----
    The class method `fromvalues` can be used to construct a header from
    the file length and the sizes of the compressed blocks.
    """

    def verify(self):
        """Verify that the offset table is consistent with the file length.

        Raises
        ------
        ~rawfork.base.base.BlobCorrupt
            If the number of offsets does not match the number of blocks
            implied by the length, if the first offset does not point just
            beyond the header, or if the offsets are not increasing.
        """
        super().verify()
        if len(self.words) < 2:
            raise BlobCorrupt("header should contain at least two words.")
        if len(self.words) != self.block_count + 2:
            raise BlobCorrupt(
                f"header has {len(self.words) - 1} offsets, but length "
                f"{self.fork_length} implies {self.block_count + 1}.")
        if self.offsets[0] != self.nbytes:
            raise BlobCorrupt(
                f"first offset {self.offsets[0]} does not point to the end "
                f"of the header at {self.nbytes}.")
        # Every block is non-empty, so offsets should strictly increase.
        if np.any(np.diff(self.offsets.astype(np.int64)) <= 0):
            raise BlobCorrupt("offsets are not monotonically increasing.")

    @classmethod
    def fromfile(cls, fh, verify=True):
        """Read blob header from filehandle.

        The first word gives the file length, which determines how many
        offsets follow.

        Raises
        ------
        ~rawfork.base.base.BlobCorrupt
            If the file ends before the header is complete.
        """
        try:
            words = cls._read_words(fh, 1)
            block_count = ceil_div(int(words[0]), BLOCK_SIZE)
            offsets = cls._read_words(fh, block_count + 1)
        except EOFError as exc:
            raise BlobCorrupt(f"blob truncated inside header: {exc}") from exc

        return cls(np.concatenate((words, offsets)), verify=verify)

    @classmethod
    def fromvalues(cls, fork_length, block_nbytes=(), verify=True):
        """Construct a header from the file length and block sizes.

        Parameters
        ----------
        fork_length : int
            Length of the original file in bytes.
        block_nbytes : sequence of int
            Sizes of the compressed blocks.  The number should be consistent
            with ``fork_length``.
        verify : bool, optional
            Whether to do basic verification of integrity.  Default: `True`.
        """
        block_count = ceil_div(fork_length, BLOCK_SIZE)
        if len(block_nbytes) != block_count:
            raise ValueError(f"a file of {fork_length} bytes needs "
                             f"{block_count} blocks, not {len(block_nbytes)}.")
        start = 4 * (block_count + 2)
        offsets = np.cumsum([start] + list(block_nbytes), dtype=np.int64)
        words = cls._check_words([fork_length] + offsets.tolist())
        return cls(words, verify=verify)

    @lazyproperty
    def fork_length(self):
        """Length of the original file in bytes."""
        return int(self.words[0])

    @lazyproperty
    def block_count(self):
        """Number of blocks the original file is split into."""
        return ceil_div(self.fork_length, BLOCK_SIZE)

    @property
    def offsets(self):
        """Offsets of the start of each block, and the end of the last."""
        return self.words[1:]

    @property
    def block_nbytes(self):
        """Sizes of the compressed blocks."""
        return np.diff(self.offsets.astype(np.int64))

    @property
    def data_nbytes(self):
        """Offset just beyond the last block, i.e., of the trailer."""
        return int(self.offsets[-1])

    @property
    def blob_nbytes(self):
        """Size of the complete blob, including the trailer."""
        return self.data_nbytes + BlobTrailer.nbytes

    def _block_index(self, index):
        if index < 0:
            index += self.block_count
        if not 0 <= index < self.block_count:
            raise IndexError(f"block index out of range for a blob with "
                             f"{self.block_count} blocks.")
        return index

    def block_range(self, index):
        """Start and stop offsets of the given block within the blob."""
        index = self._block_index(index)
        return int(self.offsets[index]), int(self.offsets[index + 1])

    def block_size(self, index):
        """Number of original bytes encoded in the given block."""
        index = self._block_index(index)
        if index < self.block_count - 1:
            return BLOCK_SIZE
        return self.fork_length - index * BLOCK_SIZE

    def __repr__(self):
        name = self.__class__.__name__
        outs = [f"fork_length: {self.fork_length}",
                f"block_count: {self.block_count}",
                f"offsets: {self.offsets.tolist()}"]
        return "<{} {}>".format(name, (",\n  " + " "*len(name)).join(outs))


class BlobTrailer(WordsHeaderBase):
    """Reserved words following the last block of a blob.

    They are written as zeros and ignored on reading, except that a
    warning is given if any are not zero.

    Parameters
    ----------
    words : tuple, list or `~numpy.ndarray` of int, optional
        Trailer words.  Default: all zero.
    verify : bool, optional
        Whether to do basic verification of integrity.  Default: `True`.
    """

    def __init__(self, words=None, verify=True):
        if words is None:
            words = [0] * TRAILER_WORDS
        super().__init__(words, verify=verify)

    def verify(self):
        super().verify()
        if len(self.words) != TRAILER_WORDS:
            raise BlobCorrupt(f"trailer should have {TRAILER_WORDS} words.")
        if np.any(self.words != 0):
            warnings.warn("reserved words in blob trailer are not zero; "
                          "ignoring them.")

    @fixedvalue
    def nbytes(cls):
        """Size of the trailer in bytes."""
        return TRAILER_WORDS * cls._dtype_word.itemsize

    @classmethod
    def fromfile(cls, fh, verify=True):
        """Read blob trailer from filehandle.

        Raises
        ------
        ~rawfork.base.base.BlobCorrupt
            If the file ends before the trailer is complete.
        """
        try:
            words = cls._read_words(fh, TRAILER_WORDS)
        except EOFError as exc:
            raise BlobCorrupt(f"blob truncated inside trailer: {exc}") from exc
        return cls(words, verify=verify)
