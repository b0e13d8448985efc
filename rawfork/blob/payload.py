# Licensed under the GPLv3 - see LICENSE
"""
Definitions for the compressed blocks of original-file blobs.

Each block holds a complete, independent zlib stream that encodes at most
`~rawfork.blob.header.BLOCK_SIZE` bytes of the original file.
"""
import zlib
from contextlib import contextmanager

from ..base.base import BlobCorrupt, CompressionFailure
from ..base.payload import PayloadBase
from .header import BLOCK_SIZE


__all__ = ['compressor', 'decompressor', 'BlockPayload']


@contextmanager
def compressor(level=zlib.Z_DEFAULT_COMPRESSION):
    """Context manager providing a fresh deflate context for one block.

    Any `zlib.error` raised inside the ``with`` block, including on
    creation of the context, is re-raised as
    `~rawfork.base.base.CompressionFailure`.
    """
    try:
        yield zlib.compressobj(level)
    except zlib.error as exc:
        raise CompressionFailure(f"could not compress block: {exc}") from exc


@contextmanager
def decompressor():
    """Context manager providing a fresh inflate context for one block.

    Any `zlib.error` raised inside the ``with`` block is re-raised as
    `~rawfork.base.base.BlobCorrupt`.
    """
    try:
        yield zlib.decompressobj()
    except zlib.error as exc:
        raise BlobCorrupt(f"could not decompress block: {exc}") from exc


class BlockPayload(PayloadBase):
    """Container for a single compressed block.

    Parameters
    ----------
    words : `~numpy.ndarray`
        Array of unsigned bytes holding the compressed stream.
    verify : bool, optional
        Whether to do basic verification of integrity.  Default: `True`.

    Notes
    -----
    The class method `fromdata` compresses up to
    `~rawfork.blob.header.BLOCK_SIZE` bytes into a payload, while the
    ``data`` property decompresses it again.
    """
    _level = zlib.Z_DEFAULT_COMPRESSION
    """Default compression level."""

    @classmethod
    def _encode(cls, data, level=None):
        nbytes = memoryview(data).nbytes
        if nbytes > BLOCK_SIZE:
            raise ValueError(f"a block can encode at most {BLOCK_SIZE} "
                             f"bytes, not {nbytes}.")
        if level is None:
            level = cls._level
        with compressor(level) as deflate:
            return deflate.compress(data) + deflate.flush(zlib.Z_FINISH)

    def _decode(self, words, max_nbytes=BLOCK_SIZE):
        # Allow one byte too many, so overly long output can be detected
        # without having to inflate the whole stream.
        with decompressor() as inflate:
            data = inflate.decompress(words, max_nbytes + 1)
        if len(data) > max_nbytes:
            raise BlobCorrupt(f"block decompresses to more than "
                              f"{max_nbytes} bytes.")
        if not inflate.eof:
            raise BlobCorrupt("block does not hold a complete "
                              "compressed stream.")
        if inflate.unused_data:
            raise BlobCorrupt(f"block has {len(inflate.unused_data)} bytes "
                              f"beyond the end of its compressed stream.")
        return data

    def decode(self, max_nbytes=BLOCK_SIZE):
        """Decompress the block, requiring exactly one complete stream.

        Parameters
        ----------
        max_nbytes : int, optional
            Maximum number of decompressed bytes.  Default: the block size.

        Raises
        ------
        ~rawfork.base.base.BlobCorrupt
            If the payload is not a single, complete compressed stream, or
            decompresses to more than ``max_nbytes``.
        """
        return self._decode(self.words, max_nbytes=max_nbytes)
