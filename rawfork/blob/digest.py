# Licensed under the GPLv3 - see LICENSE
"""Binding of blobs to a content digest.

The container that stores a blob keeps an MD5 digest of the full blob
next to it, which it can check before trusting the blob.  Decoding a blob
never checks the digest itself.
"""
import hashlib
from collections import namedtuple


__all__ = ['DIGEST_NBYTES', 'compute_digest', 'EmbeddedOriginal']


DIGEST_NBYTES = 16
"""Size of the digest in bytes."""


def compute_digest(blob):
    """Calculate the 128-bit MD5 digest of a complete blob.

    Parameters
    ----------
    blob : bytes-like
        The encoded blob.

    Returns
    -------
    digest : bytes
        The 16-byte digest.
    """
    return hashlib.md5(blob, usedforsecurity=False).digest()


class EmbeddedOriginal(namedtuple('EmbeddedOriginal',
                                  ['blob', 'digest', 'name'])):
    """An encoded original file, with its digest and possibly its name.

    This holds the items a container stores to embed an original file.

    Parameters
    ----------
    blob : bytes
        The encoded blob.
    digest : bytes
        MD5 digest of the blob.
    name : str or None
        Name of the original file, if known.
    """
    __slots__ = ()

    def __new__(cls, blob, digest=None, name=None):
        if digest is None:
            digest = compute_digest(blob)
        return super().__new__(cls, blob, digest, name)

    def check_digest(self):
        """Whether the stored digest matches that of the blob."""
        return compute_digest(self.blob) == self.digest

    def differences(self, other):
        """List the items that differ from another embedded original.

        Parameters
        ----------
        other : `~rawfork.blob.EmbeddedOriginal`
            Instance to compare with.

        Returns
        -------
        differences : list of str
            Names of the items that differ, i.e., any of 'nbytes',
            'digest' and 'name'.  Empty if the two are the same.
        """
        differences = []
        if len(self.blob) != len(other.blob):
            differences.append('nbytes')
        if self.digest != other.digest:
            differences.append('digest')
        if self.name != other.name:
            differences.append('name')
        return differences
