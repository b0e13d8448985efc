# Licensed under the GPLv3 - see LICENSE
"""Base implementations shared between formats.

Files are considered as composed of a header, payloads and possibly a
trailer, which are encoded in various ways.  Base classes implementing the
decoding and encoding and exposing a standardized interface are found in
the corresponding `~rawfork.base.header` and `~rawfork.base.payload`
modules.

The `~rawfork.base.base` module defines base methods for file readers and
writers, as well as the exceptions raised on failures.  Each file reader
has an ``info`` property, defined in `~rawfork.base.file_info`, that
provides standardized information.

Finally, `~rawfork.base.utils` contains some general utility routines.
"""
