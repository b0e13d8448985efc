# Licensed under the GPLv3 - see LICENSE
"""The BlobFileReaderInfo property.

Includes information about the embedded original, such as its size and
the number of blocks, as well as checks that the blob is consistent and
can be decoded.
"""
import warnings

from astropy import units as u

from ..base.file_info import FileReaderInfo, info_item
from .digest import compute_digest


__all__ = ['BlobFileReaderInfo']


class BlobFileReaderInfo(FileReaderInfo):
    """Standardized information on blob file readers.

    The ``info`` descriptor has a number of standard attributes, which are
    determined from the header with the offset table, and from checks of
    the file size and decoding.

    Examples
    --------
    The most common use is simply to print information::

        >>> import io
        >>> from rawfork import blob
        >>> fh = blob.open(io.BytesIO(blob.encode(b'\\0' * 70000)), 'rb')
        >>> fh.info.block_count
        2
        >>> fh.info.readable
        True
        >>> fh.close()
    """
    attr_names = ('format', 'fork_length', 'block_count', 'file_nbytes',
                  'compression_ratio', 'digest', 'readable',
                  'checks', 'errors', 'warnings')
    """Attributes that the container provides."""

    fork_length = info_item(needs='header0', doc=(
        'Length of the embedded original file.'))
    block_count = info_item(needs='header0', doc=(
        'Number of compressed blocks.'))

    @info_item(needs=('fork_length', 'file_nbytes'))
    def compression_ratio(self):
        """Ratio of the blob size to the size of the original file."""
        if self.fork_length == 0:
            return None
        return (self.file_nbytes / (self.fork_length * u.byte)).to(u.one)

    @info_item(needs='header0')
    def consistent(self):
        """Whether the file size matches the offset table."""
        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter('always')
            self._parent.read_trailer(self.header0)
        if w:
            self.warnings['consistent'] = str(w[0].message)
        return True

    @info_item(needs='consistent', default=False)
    def decodable(self):
        """Whether all blocks decode to their expected lengths."""
        # Any warning about the trailer was already stored by consistent.
        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            for _ in self._parent.iter_blocks():
                pass
        return True

    @info_item(needs='header0')
    def digest(self):
        """MD5 digest of the complete blob, as a hexadecimal string."""
        with self._parent.temporary_offset(0) as fh:
            return compute_digest(fh.read()).hex()

    @info_item(needs='header0', default=False)
    def readable(self):
        """Whether the file is consistent and all blocks can be decoded."""
        self.checks['consistent'] = bool(self.consistent)
        self.checks['decodable'] = self.decodable
        return all(bool(v) for v in self.checks.values())
