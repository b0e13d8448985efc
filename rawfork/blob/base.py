# Licensed under the GPLv3 - see LICENSE
import io
import os

from astropy.utils import lazyproperty

from ..base.base import (
    FileBase, FileOpener, FileInfo,
    BlobCorrupt, SourceReadError, SinkWriteError)
from ..base.utils import ceil_div
from ..helpers.atomicfile import atomic_open
from .header import BLOCK_SIZE, MAX_FORK_LENGTH, BlobHeader, BlobTrailer
from .payload import BlockPayload
from .frame import BlobFrame
from .digest import EmbeddedOriginal, compute_digest
from .file_info import BlobFileReaderInfo


__all__ = ['BlobFileReader', 'BlobFileWriter', 'open', 'info',
           'encode', 'decode', 'embed', 'extract']


class BlobFileReader(FileBase):
    """Simple reader for blob files.

    Wraps a binary filehandle, providing methods to help interpret the
    blob, such as `read_header`, `read_block` and `iter_blocks`.  The blob
    is assumed to start at the beginning of the file and to fill it.

    Parameters
    ----------
    fh_raw : filehandle
        Filehandle of the raw binary data file.
    """
    info = BlobFileReaderInfo()

    def read_header(self):
        """Read the header with the offset table from the current position.

        Returns
        -------
        header : `~rawfork.blob.BlobHeader`
        """
        return BlobHeader.fromfile(self.fh_raw)

    @lazyproperty
    def header0(self):
        """Header at the start of the file."""
        with self.temporary_offset(0):
            return self.read_header()

    def _check_size(self, header):
        with self.temporary_offset() as fh:
            file_nbytes = fh.seek(0, 2)
        if file_nbytes != header.blob_nbytes:
            raise BlobCorrupt(f"file has {file_nbytes} bytes, but offset "
                              f"table implies {header.blob_nbytes}.")

    def read_trailer(self, header=None):
        """Read the reserved trailer, checking the size of the file.

        Parameters
        ----------
        header : `~rawfork.blob.BlobHeader`, optional
            Header describing the blob.  Default: the first one in the file.

        Returns
        -------
        trailer : `~rawfork.blob.BlobTrailer`

        Raises
        ------
        ~rawfork.base.base.BlobCorrupt
            If the size of the file does not match the header.
        """
        if header is None:
            header = self.header0
        self._check_size(header)
        with self.temporary_offset(header.data_nbytes) as fh:
            return BlobTrailer.fromfile(fh.fh_raw)

    def read_block(self, index, header=None):
        """Read and decode a single block.

        Parameters
        ----------
        index : int
            Index of the block to read.
        header : `~rawfork.blob.BlobHeader`, optional
            Header describing the blob.  Default: the first one in the file.

        Returns
        -------
        data : bytes
            The decoded block.

        Raises
        ------
        ~rawfork.base.base.BlobCorrupt
            If the block cannot be read completely, is not a single complete
            compressed stream, or decodes to an unexpected number of bytes.
        """
        if header is None:
            header = self.header0
        start, stop = header.block_range(index)
        with self.temporary_offset(start) as fh:
            try:
                payload = BlockPayload.fromfile(fh.fh_raw, stop - start)
            except EOFError as exc:
                raise BlobCorrupt(f"blob truncated in block {index}.") from exc
        data = payload.decode()
        expected = header.block_size(index)
        if len(data) != expected:
            raise BlobCorrupt(f"block {index} decodes to {len(data)} bytes "
                              f"instead of {expected}.")
        return data

    def iter_blocks(self):
        """Iterate over the decoded blocks, in order.

        The file size and trailer are checked before any block is decoded.
        Since blocks are independent, the caller can stop at any block.

        Yields
        ------
        data : bytes
            Decoded contents of each block.

        Raises
        ------
        ~rawfork.base.base.BlobCorrupt
            If the blob is inconsistent, or the decoded blocks do not add
            up to the length of the original file.
        """
        header = self.header0
        self.read_trailer(header)
        nbytes = 0
        for index in range(header.block_count):
            data = self.read_block(index, header)
            nbytes += len(data)
            yield data

        if nbytes != header.fork_length:
            raise BlobCorrupt(f"decoded {nbytes} bytes instead of "
                              f"{header.fork_length}.")

    def read_frame(self, verify=True):
        """Read the complete blob.

        Parameters
        ----------
        verify : bool, optional
            Whether to do basic checks of integrity.  Default: `True`.

        Returns
        -------
        frame : `~rawfork.blob.BlobFrame`
            With ``.header``, ``.payloads`` and ``.trailer`` properties.
            The ``.data`` property returns the decoded original file.
        """
        self._check_size(self.header0)
        with self.temporary_offset(0) as fh:
            return BlobFrame.fromfile(fh.fh_raw, verify=verify)

    def read_original(self, max_workers=None):
        """Decode the full original file.

        Parameters
        ----------
        max_workers : int, optional
            If larger than 1, decompress blocks in parallel with that many
            threads.  Default: decompress sequentially.

        Returns
        -------
        data : bytes
        """
        if max_workers is not None and max_workers > 1:
            return self.read_frame().decode(max_workers=max_workers)
        return b''.join(self.iter_blocks())

    def extract(self, sink):
        """Decode the original file block by block, writing it to sink.

        Parameters
        ----------
        sink : filehandle
            Binary filehandle to write to.  On failure, it may have been
            written to partially; use `~rawfork.blob.extract` with a file
            name to avoid this.

        Returns
        -------
        nbytes : int
            Number of bytes written.

        Raises
        ------
        ~rawfork.base.base.BlobCorrupt
            If the blob could not be decoded.
        ~rawfork.base.base.SinkWriteError
            If writing to sink failed.
        """
        nbytes = 0
        for data in self.iter_blocks():
            try:
                sink.write(data)
            except OSError as exc:
                raise SinkWriteError(f"could not write recovered data: "
                                     f"{exc}") from exc
            nbytes += len(data)
        return nbytes


class BlobFileWriter(FileBase):
    """Simple writer for blob files.

    Adds `write_frame` and `write_original` methods to the binary file
    wrapper.  The blob is written starting at the current position.
    """

    def write_frame(self, data, **kwargs):
        """Write a complete blob.

        Parameters
        ----------
        data : bytes-like or `~rawfork.blob.BlobFrame`
            If not a frame, the contents of the original file, which are
            compressed into a blob first.
        **kwargs
            If ``data`` is not a frame, used to help construct it (e.g.,
            ``level`` and ``max_workers``).
        """
        if not isinstance(data, BlobFrame):
            data = BlobFrame.fromdata(data, **kwargs)
        return data.tofile(self.fh_raw)

    def write_original(self, source, level=None):
        """Compress a source file into a blob, one block at a time.

        Space for the header is reserved first; after all blocks and the
        trailer have been written, the header with the offset table is
        filled in.  If anything fails, the file is truncated back to where
        the blob would have started, so no partial blob is left behind.

        Parameters
        ----------
        source : filehandle
            Seekable binary filehandle, read from its current position
            to the end.
        level : int, optional
            Compression level.  Default: the zlib default.

        Returns
        -------
        header : `~rawfork.blob.BlobHeader`
            The header that was written.

        Raises
        ------
        ~rawfork.base.base.SourceReadError
            If the source could not be read completely.
        ~rawfork.base.base.CompressionFailure
            If a block could not be compressed.
        """
        try:
            source_start = source.tell()
            fork_length = source.seek(0, 2) - source_start
            source.seek(source_start)
        except OSError as exc:
            raise SourceReadError(f"could not determine length of source: "
                                  f"{exc}") from exc
        if fork_length > MAX_FORK_LENGTH:
            raise ValueError(f"cannot embed more than {MAX_FORK_LENGTH} "
                             f"bytes.")

        start = self.tell()
        block_count = ceil_div(fork_length, BLOCK_SIZE)
        try:
            self.fh_raw.write(bytes(4 * (block_count + 2)))
            block_nbytes = []
            for index in range(block_count):
                expected = min(BLOCK_SIZE, fork_length - index * BLOCK_SIZE)
                try:
                    data = source.read(expected)
                except OSError as exc:
                    raise SourceReadError(f"could not read block {index} "
                                          f"from source: {exc}") from exc
                if len(data) != expected:
                    raise SourceReadError(
                        f"source truncated in block {index}.")
                payload = BlockPayload.fromdata(data, level=level)
                payload.tofile(self.fh_raw)
                block_nbytes.append(payload.nbytes)

            BlobTrailer().tofile(self.fh_raw)
            header = BlobHeader.fromvalues(fork_length, block_nbytes)
            with self.temporary_offset(start) as fh:
                header.tofile(fh.fh_raw)
        except BaseException:
            # Remove everything written, so no partial blob is left.
            self.fh_raw.seek(start)
            self.fh_raw.truncate()
            raise

        return header


open = FileOpener.create(globals(), doc="""
Returns
-------
Filehandle
    :class:`~rawfork.blob.base.BlobFileReader` or
    :class:`~rawfork.blob.base.BlobFileWriter` instance.
""")


info = FileInfo.create(globals())


def encode(data, level=None, max_workers=None):
    """Compress the contents of an original file into a blob.

    Parameters
    ----------
    data : bytes-like
        Contents of the original file.
    level : int, optional
        Compression level.  Default: the zlib default.
    max_workers : int, optional
        If larger than 1, compress blocks in parallel using that many
        threads.  Default: compress sequentially.

    Returns
    -------
    blob : bytes
    """
    return BlobFrame.fromdata(data, level=level,
                              max_workers=max_workers).tobytes()


def decode(blob, max_workers=None):
    """Recover the contents of an original file from a blob.

    Parameters
    ----------
    blob : bytes-like
        The encoded blob.
    max_workers : int, optional
        If larger than 1, decompress blocks in parallel using that many
        threads.  Default: decompress sequentially.

    Returns
    -------
    data : bytes

    Raises
    ------
    ~rawfork.base.base.BlobCorrupt
        If the blob is malformed or cannot be decoded.
    """
    with BlobFileReader(io.BytesIO(blob)) as fh:
        return fh.read_original(max_workers=max_workers)


def embed(source, name=None, level=None, max_workers=None):
    """Encode an original file and bind it to a digest.

    Parameters
    ----------
    source : bytes-like, str, path-like, or filehandle
        Contents of the original file, its name, or a binary filehandle
        to read from its current position.
    name : str, optional
        Name of the original file to store alongside.  Default: the base
        name of ``source`` if that is a file name, otherwise `None`.
    level : int, optional
        Compression level.  Default: the zlib default.
    max_workers : int, optional
        If larger than 1, compress blocks in parallel using that many
        threads.  Default: compress sequentially.

    Returns
    -------
    embedded : `~rawfork.blob.EmbeddedOriginal`
        With the ``blob``, its ``digest`` and ``name``.

    Raises
    ------
    ~rawfork.base.base.SourceReadError
        If the source could not be read.
    ~rawfork.base.base.CompressionFailure
        If any block could not be compressed.
    """
    if isinstance(source, (str, os.PathLike)):
        if name is None:
            name = os.path.basename(os.fspath(source))
        try:
            with io.open(source, 'rb') as fh:
                frame = BlobFrame.fromsource(fh, level=level,
                                             max_workers=max_workers)
        except SourceReadError:
            raise
        except OSError as exc:
            raise SourceReadError(f"could not open {source}: {exc}") from exc

    elif hasattr(source, 'read'):
        frame = BlobFrame.fromsource(source, level=level,
                                     max_workers=max_workers)
    else:
        frame = BlobFrame.fromdata(source, level=level,
                                   max_workers=max_workers)

    blob = frame.tobytes()
    return EmbeddedOriginal(blob, compute_digest(blob), name)


def extract(embedded, sink=None, max_workers=None):
    """Recover an original file from its blob.

    The digest is not checked; use
    :meth:`~rawfork.blob.EmbeddedOriginal.check_digest` for that.

    Parameters
    ----------
    embedded : `~rawfork.blob.EmbeddedOriginal` or bytes-like
        The embedded original, or just its blob.
    sink : str, path-like, or filehandle, optional
        Where to write the recovered file.  If a directory, the file is
        written in it under the name stored with ``embedded``.  When
        writing to a file name, the file appears only if decoding
        succeeded.  When writing to a filehandle, the file is decoded
        completely before anything is written.  By default, the recovered
        contents are returned.
    max_workers : int, optional
        If larger than 1, decompress blocks in parallel using that many
        threads.  Default: decompress sequentially.

    Returns
    -------
    data or nbytes : bytes or int
        The recovered contents if no ``sink`` was given, otherwise the
        number of bytes written.

    Raises
    ------
    ~rawfork.base.base.BlobCorrupt
        If the blob is malformed or cannot be decoded.
    ~rawfork.base.base.SinkWriteError
        If the recovered file could not be written.
    """
    if isinstance(embedded, EmbeddedOriginal):
        blob, name = embedded.blob, embedded.name
    else:
        blob, name = embedded, None

    if sink is None:
        return decode(blob, max_workers=max_workers)

    if hasattr(sink, 'write'):
        data = decode(blob, max_workers=max_workers)
        try:
            sink.write(data)
        except OSError as exc:
            raise SinkWriteError(f"could not write recovered data: "
                                 f"{exc}") from exc
        return len(data)

    if os.path.isdir(sink):
        if not name:
            raise ValueError("no name stored with the original, so it "
                             "cannot be extracted to a directory.")
        sink = os.path.join(sink, os.path.basename(name))

    with BlobFileReader(io.BytesIO(blob)) as fh:
        try:
            with atomic_open(sink) as fw:
                return fh.extract(fw)
        except SinkWriteError:
            raise
        except OSError as exc:
            raise SinkWriteError(f"could not write {sink}: {exc}") from exc
