# Licensed under the GPLv3 - see LICENSE
"""Embedding of original raw files in block-compressed blobs."""
from importlib.metadata import PackageNotFoundError, version as _version

from .blob import open, info, encode, decode, embed, extract  # noqa
from .blob import EmbeddedOriginal  # noqa
from .base.base import (SourceReadError, CompressionFailure,  # noqa
                        BlobCorrupt, SinkWriteError)

try:
    __version__ = _version('rawfork')
except PackageNotFoundError:
    __version__ = ''

# Define minima for the documentation, but do not bother to explicitly check.
__minimum_python_version__ = '3.10'
__minimum_astropy_version__ = '5.1'
__minimum_numpy_version__ = '1.24'
