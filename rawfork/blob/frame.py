# Licensed under the GPLv3 - see LICENSE
"""
Definition of a complete original-file blob.

Defines a frame class BlobFrame that holds the header with the offset
table, the compressed blocks, and the reserved trailer, providing access
to the decoded original file.
"""
import io
import functools

from ..base.base import BlobCorrupt, SourceReadError
from ..base.utils import map_ordered
from .header import BLOCK_SIZE, MAX_FORK_LENGTH, BlobHeader, BlobTrailer
from .payload import BlockPayload


__all__ = ['BlobFrame']


class BlobFrame:
    """Representation of a blob: header, compressed blocks and trailer.

    Parameters
    ----------
    header : `~rawfork.blob.BlobHeader`
        Header holding the original file length and the offset table.
    payloads : list of `~rawfork.blob.BlockPayload`
        The compressed blocks.
    trailer : `~rawfork.blob.BlobTrailer`, optional
        Reserved words after the blocks.  Default: all zero.
    verify : bool, optional
        Whether to do basic verification of integrity.  Default: `True`.

    Notes
    -----
    The Frame can also be instantiated using class methods:

      fromfile : read header, blocks and trailer from a filehandle

      fromdata : compress the bytes of an original file

    Of course, one can also do the opposite:

      tofile : method to write the blob to a filehandle

      data : property that yields the full decoded original file

    Indexing the frame with an integer decodes just that block.
    """

    _header_class = BlobHeader
    _payload_class = BlockPayload
    _trailer_class = BlobTrailer

    def __init__(self, header, payloads, trailer=None, verify=True):
        self.header = header
        self.payloads = list(payloads)
        if trailer is None:
            trailer = self._trailer_class()
        self.trailer = trailer
        if verify:
            self.verify()

    def verify(self):
        """Check the blocks are consistent with the offset table."""
        assert isinstance(self.header, self._header_class)
        assert all(isinstance(payload, self._payload_class)
                   for payload in self.payloads)
        assert isinstance(self.trailer, self._trailer_class)
        if len(self.payloads) != self.header.block_count:
            raise BlobCorrupt(f"header describes {self.header.block_count} "
                              f"blocks, but {len(self.payloads)} are present.")
        block_nbytes = [payload.nbytes for payload in self.payloads]
        if block_nbytes != self.header.block_nbytes.tolist():
            raise BlobCorrupt("block sizes are inconsistent with the offsets.")

    @classmethod
    def fromfile(cls, fh, verify=True):
        """Read a blob from a filehandle.

        The blob is assumed to start at the current position.  Blocks are
        read by seeking to their offsets, and the file pointer is left
        just after the trailer.

        Raises
        ------
        ~rawfork.base.base.BlobCorrupt
            If the header or table is inconsistent, or the file ends
            before all blocks and the trailer are read.
        """
        start = fh.tell()
        header = cls._header_class.fromfile(fh, verify=verify)
        payloads = []
        for index in range(header.block_count):
            block_start, block_stop = header.block_range(index)
            fh.seek(start + block_start)
            try:
                payloads.append(cls._payload_class.fromfile(
                    fh, block_stop - block_start))
            except EOFError as exc:
                raise BlobCorrupt(f"blob truncated in block {index}.") from exc
        fh.seek(start + header.data_nbytes)
        trailer = cls._trailer_class.fromfile(fh, verify=verify)
        return cls(header, payloads, trailer, verify=verify)

    def tofile(self, fh):
        """Write the blob to a filehandle."""
        nbytes = self.header.tofile(fh)
        for payload in self.payloads:
            nbytes += payload.tofile(fh)
        return nbytes + self.trailer.tofile(fh)

    @classmethod
    def fromdata(cls, data, level=None, max_workers=None, verify=True):
        """Compress the bytes of an original file into a blob.

        Parameters
        ----------
        data : bytes-like
            Contents of the original file.
        level : int, optional
            Compression level.  Default: ``BlockPayload._level``, i.e.,
            the zlib default.
        max_workers : int, optional
            If larger than 1, blocks are compressed in parallel using that
            many threads.  Default: compress sequentially.
        verify : bool, optional
            Whether to do basic verification of integrity.  Default: `True`.

        Raises
        ------
        ~rawfork.base.base.CompressionFailure
            If any block could not be compressed.  No blob is produced.
        """
        data = memoryview(data).cast('B')
        if data.nbytes > MAX_FORK_LENGTH:
            raise ValueError(f"cannot embed more than {MAX_FORK_LENGTH} "
                             f"bytes.")
        blocks = [data[start:start+BLOCK_SIZE]
                  for start in range(0, data.nbytes, BLOCK_SIZE)]
        encode = functools.partial(cls._payload_class.fromdata, level=level)
        payloads = map_ordered(encode, blocks, max_workers=max_workers)
        header = cls._header_class.fromvalues(
            data.nbytes, [payload.nbytes for payload in payloads])
        return cls(header, payloads, verify=verify)

    @classmethod
    def fromsource(cls, source, level=None, max_workers=None, verify=True):
        """Read a complete original file and compress it into a blob.

        Parameters
        ----------
        source : filehandle
            Binary filehandle, read from its current position to the end.

        Other parameters are as for `fromdata`.

        Raises
        ------
        ~rawfork.base.base.SourceReadError
            If the source could not be read.
        """
        try:
            data = source.read()
        except OSError as exc:
            raise SourceReadError(f"could not read source: {exc}") from exc
        return cls.fromdata(data, level=level, max_workers=max_workers,
                            verify=verify)

    def __len__(self):
        """Number of blocks in the blob."""
        return len(self.payloads)

    @property
    def fork_length(self):
        """Length of the original file in bytes."""
        return self.header.fork_length

    @property
    def nbytes(self):
        """Size of the encoded blob in bytes."""
        return self.header.blob_nbytes

    def __getitem__(self, index):
        """Decode a single block, checking it has the expected length."""
        expected = self.header.block_size(index)
        data = self.payloads[index].decode()
        if len(data) != expected:
            raise BlobCorrupt(f"block {index} decodes to {len(data)} bytes "
                              f"instead of {expected}.")
        return data

    def decode(self, max_workers=None):
        """Decode all blocks and concatenate them in order.

        Parameters
        ----------
        max_workers : int, optional
            If larger than 1, blocks are decompressed in parallel using that
            many threads.  Default: decompress sequentially.

        Raises
        ------
        ~rawfork.base.base.BlobCorrupt
            If any block fails to decompress to its expected length.
        """
        data = b''.join(map_ordered(self.__getitem__, range(len(self)),
                                    max_workers=max_workers))
        if len(data) != self.fork_length:
            raise BlobCorrupt(f"decoded {len(data)} bytes instead of "
                              f"{self.fork_length}.")
        return data

    data = property(decode, doc="Full decoded original file.")

    def tobytes(self):
        """Encoded blob as bytes."""
        with io.BytesIO() as fh:
            self.tofile(fh)
            return fh.getvalue()

    def __eq__(self, other):
        return (type(self) is type(other)
                and self.header == other.header
                and self.payloads == other.payloads
                and self.trailer == other.trailer)
