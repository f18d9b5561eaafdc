"""Bounded raw DEFLATE (RFC 1951) decoder for ZIP entry payloads.

The decoder never emits more than the size declared in the entry header and
refuses suspicious inputs before any decoding work is done:

- declared size must be positive and at most ``max_size`` bytes
- declared size / compressed size must not exceed ``max_ratio``

After decoding, the produced length must equal the declared size exactly.
"""

from __future__ import annotations

from collections.abc import Sequence

from transit_schedule.errors import CorruptArchiveError, SecurityViolationError

# 50 MB per entry
MAX_ENTRY_SIZE = 50_000_000
MAX_COMPRESSION_RATIO = 100.0

_LENGTH_BASE = (
    3, 4, 5, 6, 7, 8, 9, 10, 11, 13, 15, 17, 19, 23, 27, 31,
    35, 43, 51, 59, 67, 83, 99, 115, 131, 163, 195, 227, 258,
)  # fmt: skip
_LENGTH_EXTRA = (
    0, 0, 0, 0, 0, 0, 0, 0, 1, 1, 1, 1, 2, 2, 2, 2,
    3, 3, 3, 3, 4, 4, 4, 4, 5, 5, 5, 5, 0,
)  # fmt: skip
_DIST_BASE = (
    1, 2, 3, 4, 5, 7, 9, 13, 17, 25, 33, 49, 65, 97, 129, 193,
    257, 385, 513, 769, 1025, 1537, 2049, 3073, 4097, 6145,
    8193, 12289, 16385, 24577,
)  # fmt: skip
_DIST_EXTRA = (
    0, 0, 0, 0, 1, 1, 2, 2, 3, 3, 4, 4, 5, 5, 6, 6,
    7, 7, 8, 8, 9, 9, 10, 10, 11, 11, 12, 12, 13, 13,
)  # fmt: skip
_CODE_LENGTH_ORDER = (16, 17, 18, 0, 8, 7, 9, 6, 10, 5, 11, 4, 12, 3, 13, 2, 14, 1, 15)

_END_OF_BLOCK = 256


class _BitReader:
    """LSB-first bit reader over a byte string."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0
        self._bit_buf = 0
        self._bit_count = 0

    def _fill(self, n: int) -> None:
        while self._bit_count < n and self._pos < len(self._data):
            self._bit_buf |= self._data[self._pos] << self._bit_count
            self._pos += 1
            self._bit_count += 8

    def peek(self, n: int) -> int:
        """Return the next ``n`` bits without consuming them (zero padded at end)."""
        self._fill(n)
        return self._bit_buf & ((1 << n) - 1)

    def skip(self, n: int) -> None:
        if n > self._bit_count:
            raise CorruptArchiveError("Unexpected end of DEFLATE stream")
        self._bit_buf >>= n
        self._bit_count -= n

    def bits(self, n: int) -> int:
        value = self.peek(n)
        self.skip(n)
        return value

    def align_to_byte(self) -> None:
        # Bytes are loaded whole: drop the partial one, hand back the rest.
        self._pos -= self._bit_count // 8
        self._bit_buf = 0
        self._bit_count = 0

    def read_bytes(self, n: int) -> bytes:
        end = self._pos + n
        if end > len(self._data):
            raise CorruptArchiveError("Unexpected end of DEFLATE stream in stored block")
        chunk = self._data[self._pos : end]
        self._pos = end
        return chunk


class _Huffman:
    """Canonical Huffman code decoded through a single lookup table.

    Table entries pack ``symbol << 4 | code_length``; 0 marks an unused code.
    """

    def __init__(self, lengths: Sequence[int]) -> None:
        max_bits = max(lengths, default=0)
        self.max_bits = max_bits
        self.table = [0] * (1 << max_bits)
        if max_bits == 0:
            return

        bl_count = [0] * (max_bits + 1)
        for length in lengths:
            if length:
                bl_count[length] += 1

        left = 1
        for bits in range(1, max_bits + 1):
            left = (left << 1) - bl_count[bits]
            if left < 0:
                raise CorruptArchiveError("Over-subscribed Huffman code lengths")

        next_code = [0] * (max_bits + 2)
        code = 0
        for bits in range(1, max_bits + 1):
            code = (code + bl_count[bits - 1]) << 1
            next_code[bits] = code

        size = 1 << max_bits
        for symbol, length in enumerate(lengths):
            if not length:
                continue
            code = next_code[length]
            next_code[length] += 1
            reversed_code = int(format(code, f"0{length}b")[::-1], 2)
            entry = (symbol << 4) | length
            for index in range(reversed_code, size, 1 << length):
                self.table[index] = entry

    def decode(self, reader: _BitReader) -> int:
        entry = self.table[reader.peek(self.max_bits)]
        if not entry:
            raise CorruptArchiveError("Invalid Huffman code in DEFLATE stream")
        reader.skip(entry & 0xF)
        return entry >> 4


def _fixed_tables() -> tuple[_Huffman, _Huffman]:
    lengths = [8] * 144 + [9] * 112 + [7] * 24 + [8] * 8
    return _Huffman(lengths), _Huffman([5] * 30)


_FIXED_LITLEN, _FIXED_DIST = _fixed_tables()


def _dynamic_tables(reader: _BitReader) -> tuple[_Huffman, _Huffman]:
    hlit = reader.bits(5) + 257
    hdist = reader.bits(5) + 1
    hclen = reader.bits(4) + 4
    if hlit > 286 or hdist > 30:
        raise CorruptArchiveError("Too many length or distance codes in dynamic block")

    cl_lengths = [0] * 19
    for i in range(hclen):
        cl_lengths[_CODE_LENGTH_ORDER[i]] = reader.bits(3)
    code_lengths = _Huffman(cl_lengths)

    total = hlit + hdist
    lengths: list[int] = []
    while len(lengths) < total:
        symbol = code_lengths.decode(reader)
        if symbol < 16:
            lengths.append(symbol)
        elif symbol == 16:
            if not lengths:
                raise CorruptArchiveError("Repeat code with no previous length")
            lengths.extend([lengths[-1]] * (3 + reader.bits(2)))
        elif symbol == 17:
            lengths.extend([0] * (3 + reader.bits(3)))
        else:
            lengths.extend([0] * (11 + reader.bits(7)))

    if len(lengths) > total:
        raise CorruptArchiveError("Code length repeat overruns table")
    if lengths[_END_OF_BLOCK] == 0:
        raise CorruptArchiveError("Dynamic block has no end-of-block code")

    return _Huffman(lengths[:hlit]), _Huffman(lengths[hlit:])


def _inflate_block(
    reader: _BitReader,
    out: bytearray,
    litlen: _Huffman,
    dist: _Huffman,
    limit: int,
) -> None:
    while True:
        symbol = litlen.decode(reader)
        if symbol < _END_OF_BLOCK:
            if len(out) >= limit:
                raise CorruptArchiveError(f"Decompressed data exceeds declared size of {limit} bytes")
            out.append(symbol)
            continue
        if symbol == _END_OF_BLOCK:
            return

        symbol -= 257
        if symbol >= len(_LENGTH_BASE):
            raise CorruptArchiveError("Invalid length symbol in DEFLATE stream")
        length = _LENGTH_BASE[symbol] + reader.bits(_LENGTH_EXTRA[symbol])

        dist_symbol = dist.decode(reader)
        if dist_symbol >= len(_DIST_BASE):
            raise CorruptArchiveError("Invalid distance symbol in DEFLATE stream")
        distance = _DIST_BASE[dist_symbol] + reader.bits(_DIST_EXTRA[dist_symbol])

        if distance > len(out):
            raise CorruptArchiveError("Back-reference before start of output")
        if len(out) + length > limit:
            raise CorruptArchiveError(f"Decompressed data exceeds declared size of {limit} bytes")

        start = len(out) - distance
        if length <= distance:
            out += out[start : start + length]
        else:
            window = out[start:]
            out += (window * (length // distance + 1))[:length]


def _inflate_stored(reader: _BitReader, out: bytearray, limit: int) -> None:
    reader.align_to_byte()
    length = reader.bits(16)
    complement = reader.bits(16)
    if length != (~complement & 0xFFFF):
        raise CorruptArchiveError("Stored block length check failed")
    if len(out) + length > limit:
        raise CorruptArchiveError(f"Decompressed data exceeds declared size of {limit} bytes")
    out += reader.read_bytes(length)


def check_limits(
    compressed_size: int,
    declared_size: int,
    *,
    max_size: int = MAX_ENTRY_SIZE,
    max_ratio: float = MAX_COMPRESSION_RATIO,
) -> None:
    """Reject an entry from its header sizes alone, before any decoding.

    Raises:
        CorruptArchiveError: If the declared size is not positive or there is no payload.
        SecurityViolationError: If the entry is oversized or the ratio is suspicious.
    """
    if declared_size <= 0:
        raise CorruptArchiveError(f"Invalid declared uncompressed size: {declared_size}")
    if declared_size > max_size:
        raise SecurityViolationError(
            f"Declared uncompressed size {declared_size} exceeds limit of {max_size} bytes"
        )
    if compressed_size <= 0:
        raise CorruptArchiveError("Empty compressed data")
    ratio = declared_size / compressed_size
    if ratio > max_ratio:
        raise SecurityViolationError(
            f"Suspicious compression ratio {ratio:.0f}:1 (limit {max_ratio:.0f}:1), possible zip bomb"
        )


def inflate(
    compressed: bytes,
    declared_size: int,
    *,
    max_size: int = MAX_ENTRY_SIZE,
    max_ratio: float = MAX_COMPRESSION_RATIO,
) -> bytes:
    """Decode a raw DEFLATE stream into exactly ``declared_size`` bytes.

    Raises:
        CorruptArchiveError: On a malformed stream or any size mismatch.
        SecurityViolationError: If the size limits reject the entry.
    """
    check_limits(len(compressed), declared_size, max_size=max_size, max_ratio=max_ratio)

    reader = _BitReader(compressed)
    out = bytearray()
    final = 0
    while not final:
        final = reader.bits(1)
        block_type = reader.bits(2)
        if block_type == 0:
            _inflate_stored(reader, out, declared_size)
        elif block_type == 1:
            _inflate_block(reader, out, _FIXED_LITLEN, _FIXED_DIST, declared_size)
        elif block_type == 2:
            litlen, dist = _dynamic_tables(reader)
            _inflate_block(reader, out, litlen, dist, declared_size)
        else:
            raise CorruptArchiveError("Invalid DEFLATE block type 3")

    if len(out) != declared_size:
        raise CorruptArchiveError(
            f"Decompression size mismatch: expected {declared_size} bytes, "
            f"got {len(out)} bytes. Data may be corrupted."
        )
    return bytes(out)
