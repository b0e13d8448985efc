# Licensed under the GPLv3 - see LICENSE
import io
import zlib
import pickle

import pytest
import numpy as np
import astropy.units as u

from ... import blob
from ...base.base import BlobCorrupt, CompressionFailure, SourceReadError
from ..header import BLOCK_SIZE, TRAILER_WORDS
from .. import payload as payload_module


def random_bytes(nbytes, seed=1):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, nbytes, dtype=np.uint8).tobytes()


class TestHeader:
    def test_fromvalues(self):
        header = blob.BlobHeader.fromvalues(70000, [100, 50])
        assert header.fork_length == 70000
        assert header.block_count == 2
        assert header.offsets.tolist() == [16, 116, 166]
        assert header.block_nbytes.tolist() == [100, 50]
        assert header.nbytes == 16
        assert len(header) == 4
        assert header.data_nbytes == 166
        assert header.blob_nbytes == 166 + 28
        assert header.block_range(0) == (16, 116)
        assert header.block_range(1) == (116, 166)
        assert header.block_range(-1) == (116, 166)
        assert header.block_size(0) == BLOCK_SIZE
        assert header.block_size(1) == 4464
        with pytest.raises(IndexError):
            header.block_range(2)
        with pytest.raises(IndexError):
            header.block_size(-3)

    @pytest.mark.parametrize('fork_length,block_count', [
        (0, 0), (1, 1), (65535, 1), (65536, 1), (65537, 2),
        (3 * 65536, 3), (3 * 65536 + 1, 4)])
    def test_block_count(self, fork_length, block_count):
        header = blob.BlobHeader.fromvalues(fork_length, [10] * block_count)
        assert header.block_count == block_count
        assert header.offsets[0] == 8 + 4 * block_count

    def test_empty(self):
        header = blob.BlobHeader.fromvalues(0)
        assert header.words.tolist() == [0, 8]
        assert header.nbytes == 8
        assert header.blob_nbytes == 36
        with pytest.raises(IndexError):
            header.block_range(0)

    def test_encoding(self):
        header = blob.BlobHeader.fromvalues(1, [10])
        with io.BytesIO() as s:
            assert header.tofile(s) == 12
            raw = s.getvalue()
        # Big-endian words: length, start of block data, end of block 0.
        assert raw == (b'\x00\x00\x00\x01' b'\x00\x00\x00\x0c'
                       b'\x00\x00\x00\x16')
        header2 = blob.BlobHeader.fromfile(io.BytesIO(raw + b'more'))
        assert header2 == header
        assert header2.copy() == header

    def test_immutable(self):
        header = blob.BlobHeader.fromvalues(70000, [100, 50])
        with pytest.raises(ValueError):
            header.words[0] = 1

    def test_fromvalues_errors(self):
        with pytest.raises(ValueError):
            blob.BlobHeader.fromvalues(70000, [100])
        with pytest.raises(ValueError):
            blob.BlobHeader.fromvalues(0, [100])
        with pytest.raises(ValueError):
            blob.BlobHeader.fromvalues(1, [1 << 32])

    @pytest.mark.parametrize('words', [
        [5],  # Too short.
        [70000, 16, 116],  # Too few offsets.
        [1, 12, 20, 30],  # Too many offsets.
        [1, 8, 20],  # First offset not after table.
        [70000, 16, 116, 116],  # Empty block.
        [70000, 16, 116, 100]])  # Decreasing.
    def test_verify(self, words):
        with pytest.raises(BlobCorrupt):
            blob.BlobHeader(words)
        header = blob.BlobHeader(words, verify=False)
        with pytest.raises(BlobCorrupt):
            header.verify()

    def test_fromfile_truncated(self):
        header = blob.BlobHeader.fromvalues(70000, [100, 50])
        with io.BytesIO() as s:
            header.tofile(s)
            raw = s.getvalue()
        for n in range(len(raw)):
            with pytest.raises(BlobCorrupt):
                blob.BlobHeader.fromfile(io.BytesIO(raw[:n]))

    def test_repr(self):
        header = blob.BlobHeader.fromvalues(70000, [100, 50])
        assert 'fork_length: 70000' in repr(header)
        assert 'offsets: [16, 116, 166]' in repr(header)


class TestTrailer:
    def test_default(self):
        trailer = blob.BlobTrailer()
        assert trailer.words.tolist() == [0] * TRAILER_WORDS
        assert trailer.nbytes == 28
        assert blob.BlobTrailer.nbytes == 28
        with io.BytesIO() as s:
            assert trailer.tofile(s) == 28
            assert s.getvalue() == bytes(28)
            s.seek(0)
            assert blob.BlobTrailer.fromfile(s) == trailer

    def test_nonzero(self):
        with pytest.warns(UserWarning, match='not zero'):
            trailer = blob.BlobTrailer([0, 0, 0, 0, 0, 0, 1])
        assert trailer.words[-1] == 1

    def test_bad(self):
        with pytest.raises(BlobCorrupt):
            blob.BlobTrailer([0] * 6)
        with pytest.raises(BlobCorrupt):
            blob.BlobTrailer.fromfile(io.BytesIO(bytes(27)))
        with pytest.raises(ValueError):
            trailer = blob.BlobTrailer()
            trailer.nbytes = 32


class FailingCompressor:
    def compress(self, data):
        raise zlib.error('deliberate failure')

    def flush(self, mode=zlib.Z_FINISH):
        raise zlib.error('deliberate failure')


class TestPayload:
    def setup_method(self):
        self.data = b'original raw file ' * 1000

    def test_fromdata(self):
        payload = blob.BlockPayload.fromdata(self.data)
        assert payload.words.dtype == np.dtype('u1')
        assert payload.words.tobytes() == zlib.compress(self.data)
        assert payload.nbytes < len(self.data)
        assert payload.decode() == self.data
        assert payload.data == self.data
        payload2 = blob.BlockPayload.fromdata(self.data, level=0)
        assert payload2.nbytes > payload.nbytes
        assert payload2.data == self.data
        assert payload2 != payload

    def test_fromfile(self):
        payload = blob.BlockPayload.fromdata(self.data)
        with io.BytesIO() as s:
            payload.tofile(s)
            s.seek(0)
            payload2 = blob.BlockPayload.fromfile(s, payload.nbytes)
            assert payload2 == payload
            s.seek(1)
            with pytest.raises(EOFError):
                blob.BlockPayload.fromfile(s, payload.nbytes)

    def test_wrong_dtype(self):
        with pytest.raises(ValueError):
            blob.BlockPayload(np.zeros(4, dtype='u4'))

    def test_full_block(self):
        data = random_bytes(BLOCK_SIZE)
        payload = blob.BlockPayload.fromdata(data)
        assert payload.decode() == data
        with pytest.raises(ValueError):
            blob.BlockPayload.fromdata(data + b'1')

    @pytest.mark.parametrize('encoded', [
        b'',
        b'not a compressed stream',
        zlib.compress(b'original raw file ' * 1000)[:-4],
        zlib.compress(b'original raw file ' * 1000) + b'\x00\x00',
        zlib.compress(b'original raw file ' * 1000) * 2,
        zlib.compress(bytes(BLOCK_SIZE + 1))])
    def test_bad_stream(self, encoded):
        payload = blob.BlockPayload(np.frombuffer(encoded, dtype='u1'))
        with pytest.raises(BlobCorrupt):
            payload.decode()

    def test_max_nbytes(self):
        payload = blob.BlockPayload.fromdata(bytes(11))
        assert payload.decode(max_nbytes=11) == bytes(11)
        with pytest.raises(BlobCorrupt):
            payload.decode(max_nbytes=10)

    def test_compression_failure(self, monkeypatch):
        monkeypatch.setattr(payload_module.zlib, 'compressobj',
                            lambda level: FailingCompressor())
        with pytest.raises(CompressionFailure):
            blob.BlockPayload.fromdata(self.data)
        with pytest.raises(CompressionFailure):
            blob.encode(self.data)
        with pytest.raises(CompressionFailure):
            blob.embed(self.data)


class TestFrame:
    def test_empty(self):
        encoded = blob.encode(b'')
        assert len(encoded) == 36
        assert encoded[:8] == b'\x00\x00\x00\x00\x00\x00\x00\x08'
        assert encoded[8:] == bytes(28)
        assert blob.decode(encoded) == b''
        frame = blob.BlobFrame.fromdata(b'')
        assert len(frame) == 0
        assert frame.nbytes == 36
        assert frame.data == b''

    def test_zeros(self):
        data = bytes(70000)
        frame = blob.BlobFrame.fromdata(data)
        assert frame.fork_length == 70000
        assert len(frame) == frame.header.block_count == 2
        assert len(frame[0]) == 65536
        assert len(frame[1]) == 4464
        assert frame[-1] == frame[1]
        assert frame[0] + frame[1] == data
        assert frame.data == data
        encoded = frame.tobytes()
        assert len(encoded) == frame.nbytes
        assert len(encoded) == frame.header.offsets[-1] + 28
        assert len(encoded) < 1000
        assert blob.decode(encoded) == data

    @pytest.mark.parametrize('nbytes,block_count', [
        (0, 0), (1, 1), (65535, 1), (65536, 1), (65537, 2),
        (3 * 65536 + 5, 4)])
    def test_roundtrip(self, nbytes, block_count):
        data = random_bytes(nbytes)
        encoded = blob.encode(data)
        frame = blob.BlobFrame.fromfile(io.BytesIO(encoded))
        assert frame.header.block_count == block_count
        assert np.all(frame.header.block_nbytes > 0)
        assert np.all(np.diff(frame.header.offsets.astype(int)) > 0)
        assert frame.tobytes() == encoded
        assert blob.decode(encoded) == data

    def test_deterministic(self):
        data = random_bytes(200000) + bytes(100000)
        assert blob.encode(data) == blob.encode(data)
        assert blob.BlobFrame.fromdata(data) == blob.BlobFrame.fromdata(data)

    def test_input_types(self):
        data = random_bytes(70000)
        encoded = blob.encode(data)
        assert blob.encode(bytearray(data)) == encoded
        assert blob.encode(memoryview(data)) == encoded
        assert blob.encode(np.frombuffer(data, dtype='u1')) == encoded
        assert blob.decode(bytearray(encoded)) == data

    @pytest.mark.parametrize('max_workers', [None, 1, 2, 4])
    def test_parallel(self, max_workers):
        data = random_bytes(5 * 65536 + 17)
        encoded = blob.encode(data, max_workers=max_workers)
        assert encoded == blob.encode(data)
        assert blob.decode(encoded, max_workers=max_workers) == data
        frame = blob.BlobFrame.fromdata(data)
        assert frame.decode(max_workers=max_workers) == data

    def test_level(self):
        data = b'compressible ' * 20000
        fast = blob.encode(data, level=1)
        stored = blob.encode(data, level=0)
        assert len(stored) > len(fast)
        assert blob.decode(fast) == blob.decode(stored) == data

    def test_verify(self):
        frame = blob.BlobFrame.fromdata(random_bytes(70000))
        with pytest.raises(BlobCorrupt):
            blob.BlobFrame(frame.header, frame.payloads[:1])
        with pytest.raises(BlobCorrupt):
            blob.BlobFrame(frame.header, frame.payloads[::-1])
        bad = blob.BlobFrame(frame.header, frame.payloads[::-1], verify=False)
        with pytest.raises(BlobCorrupt):
            bad.verify()
        # Swapped blocks that happen to pass are caught on decoding.
        header = blob.BlobHeader.fromvalues(
            70000, [payload.nbytes for payload in frame.payloads[::-1]])
        swapped = blob.BlobFrame(header, frame.payloads[::-1])
        with pytest.raises(BlobCorrupt):
            swapped.data


class TestFileReaderWriter:
    def setup_method(self):
        self.data = random_bytes(3 * 65536 + 1000)
        self.encoded = blob.encode(self.data)

    def test_write_frame(self, tmpdir):
        name = str(tmpdir.join('test.blob'))
        with blob.open(name, 'wb') as fw:
            assert fw.write_frame(self.data) == len(self.encoded)
        with io.open(name, 'rb') as fh:
            assert fh.read() == self.encoded

        frame = blob.BlobFrame.fromdata(self.data)
        with blob.open(name, 'w') as fw:
            fw.write_frame(frame)
        with blob.open(name, 'r') as fh:
            assert fh.read_frame() == frame

    def test_write_original(self, tmpdir):
        name = str(tmpdir.join('test.blob'))
        source = io.BytesIO(b'junk' + self.data)
        source.seek(4)
        with blob.open(name, 'wb') as fw:
            header = fw.write_original(source)
            assert fw.tell() == len(self.encoded)
        assert header.fork_length == len(self.data)
        with io.open(name, 'rb') as fh:
            assert fh.read() == self.encoded

        with blob.open(name, 'wb') as fw:
            header = fw.write_original(io.BytesIO(b''))
        assert header.block_count == 0
        with io.open(name, 'rb') as fh:
            assert fh.read() == blob.encode(b'')

    def test_write_original_truncated_source(self):
        class LyingSource(io.BytesIO):
            def seek(self, offset, whence=0):
                result = super().seek(offset, whence)
                return result + 100 if whence == 2 else result

        sink = io.BytesIO()
        with blob.open(sink, 'wb') as fw:
            with pytest.raises(SourceReadError):
                fw.write_original(LyingSource(self.data))
            assert fw.tell() == 0
            assert sink.getvalue() == b''

    def test_write_original_compression_failure(self, tmpdir, monkeypatch):
        compressobj = zlib.compressobj
        calls = []

        def fail_on_third_block(level):
            calls.append(level)
            if len(calls) == 3:
                return FailingCompressor()
            return compressobj(level)

        monkeypatch.setattr(payload_module.zlib, 'compressobj',
                            fail_on_third_block)
        name = str(tmpdir.join('test.blob'))
        with blob.open(name, 'wb') as fw:
            with pytest.raises(CompressionFailure):
                fw.write_original(io.BytesIO(bytes(5 * 65536)))
        assert len(calls) == 3
        with io.open(name, 'rb') as fh:
            assert fh.read() == b''

        # Anything already in the file before the blob is kept.
        calls.clear()
        sink = io.BytesIO()
        sink.write(b'prefix')
        with blob.open(sink, 'wb') as fw:
            with pytest.raises(CompressionFailure):
                fw.write_original(io.BytesIO(bytes(5 * 65536)))
            assert fw.tell() == 6
            assert sink.getvalue() == b'prefix'

    def test_read(self, tmpdir):
        name = str(tmpdir.join('test.blob'))
        with io.open(name, 'wb') as fw:
            fw.write(self.encoded)

        with blob.open(name, 'rb') as fh:
            header = fh.read_header()
            assert fh.tell() == header.nbytes
            assert header == fh.header0
            assert header.fork_length == len(self.data)
            assert fh.read_block(1) == self.data[65536:2*65536]
            assert fh.read_block(-1) == self.data[3*65536:]
            assert fh.tell() == header.nbytes
            blocks = list(fh.iter_blocks())
            assert [len(block) for block in blocks] == [65536] * 3 + [1000]
            assert b''.join(blocks) == self.data
            assert fh.read_trailer() == blob.BlobTrailer()
            assert fh.read_original() == self.data
            assert fh.read_original(max_workers=2) == self.data
            assert fh.read_frame().data == self.data
            sink = io.BytesIO()
            assert fh.extract(sink) == len(self.data)
            assert sink.getvalue() == self.data

    def test_iter_blocks_can_stop(self):
        with blob.open(io.BytesIO(self.encoded), 'rb') as fh:
            for index, block in enumerate(fh.iter_blocks()):
                if index == 1:
                    break
            assert block == self.data[65536:2*65536]

    def test_pickle(self, tmpdir):
        name = str(tmpdir.join('test.blob'))
        with io.open(name, 'wb') as fw:
            fw.write(self.encoded)

        with blob.open(name, 'rb') as fh:
            assert fh.read_block(0) == self.data[:65536]
            pickled = pickle.dumps(fh)
            with pickle.loads(pickled) as fh2:
                assert fh2.read_block(2) == self.data[2*65536:3*65536]

        with blob.open(name, 'wb') as fw:
            with pytest.raises(TypeError):
                pickle.dumps(fw)

    def test_open_errors(self, tmpdir):
        with pytest.raises(ValueError):
            blob.open(str(tmpdir.join('test.blob')), 'rs')
        with pytest.raises(FileNotFoundError):
            blob.open(str(tmpdir.join('nonexistent.blob')), 'rb')

    def test_info(self, tmpdir):
        name = str(tmpdir.join('test.blob'))
        with io.open(name, 'wb') as fw:
            fw.write(self.encoded)

        with blob.open(name, 'rb') as fh:
            info = fh.info
            assert info.format == 'blob'
            assert info.fork_length == len(self.data)
            assert info.block_count == 4
            assert info.file_nbytes == len(self.encoded) * u.byte
            assert info.compression_ratio > 1
            assert info.digest == blob.compute_digest(self.encoded).hex()
            assert info.readable is True
            assert info.checks == {'consistent': True, 'decodable': True}
            assert info.errors == {}
            assert 'fork_length = 197608' in repr(info)
            assert info()['block_count'] == 4

        info2 = blob.info(name)
        assert info2
        assert info2.fork_length == len(self.data)
        assert info2.readable

    def test_info_compressible(self):
        with blob.open(io.BytesIO(blob.encode(bytes(70000))), 'rb') as fh:
            assert fh.info.block_count == 2
            assert fh.info.compression_ratio < 0.1
            assert fh.info.readable
        with blob.open(io.BytesIO(blob.encode(b'')), 'rb') as fh:
            assert fh.info.fork_length == 0
            assert fh.info.compression_ratio is None
            assert fh.info.readable

    def test_info_not_a_blob(self, tmpdir):
        name = str(tmpdir.join('test.txt'))
        with io.open(name, 'wb') as fw:
            fw.write(b'this is not a blob')
        info = blob.info(name)
        assert not info
        assert 'header0' in info.errors
        assert not info.readable

        no_info = blob.info(str(tmpdir.join('nonexistent.blob')))
        assert not no_info
        assert 'nonexistent' in repr(no_info)
