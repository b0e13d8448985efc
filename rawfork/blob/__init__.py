# Licensed under the GPLv3 - see LICENSE
"""Block-compressed blobs holding an embedded original file.

A blob splits the original file into blocks of 65536 bytes, compresses
each independently with zlib, and stores them after a header with the
original length and a table of offsets, followed by a reserved trailer.
"""
from .base import (open, info, encode, decode, embed, extract,  # noqa
                   BlobFileReader, BlobFileWriter)
from .header import BLOCK_SIZE, BlobHeader, BlobTrailer  # noqa
from .payload import BlockPayload  # noqa
from .frame import BlobFrame  # noqa
from .digest import EmbeddedOriginal, compute_digest  # noqa
