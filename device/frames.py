"""Decoder for the fixed-width frames devices emit on the RS-485 line.

A frame is five bytes::

    [START] [location code] [value low] [value high] [END]

There is no delimiter besides the fixed length, so the decoder accumulates
bytes until it holds a full window and then either emits a reading or
throws the whole window away.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping, Optional

logger = logging.getLogger(__name__)

FRAME_LENGTH = 5
START_BYTE = 0xAA
END_BYTE = 0x55
UNKNOWN_LOCATION = "Unknown"

# Closed table: a new installation site means a new entry here.
LOCATION_LABELS: Mapping[str, str] = {
    "A": "Qwave",
    "B": "Riverside",
    "C": "Reservoir",
    "D": "Floodgate",
}


class FrameError(ValueError):
    """Raised when a byte window cannot be decoded into a reading."""


@dataclass(frozen=True, slots=True)
class DecodedFrame:
    location_code: str
    location_label: str
    value: int


def resolve_location(code: str) -> str:
    return LOCATION_LABELS.get(code, UNKNOWN_LOCATION)


def encode_frame(location_code: str, value: int) -> bytes:
    """Build a frame the way device firmware does; used by tests and the CLI."""
    if len(location_code) != 1:
        raise ValueError("Location code must be a single character.")
    if not 0 <= value <= 0xFFFF:
        raise ValueError("Value must fit in an unsigned 16-bit integer.")
    return bytes(
        [START_BYTE, ord(location_code) & 0xFF, value & 0xFF, (value >> 8) & 0xFF, END_BYTE]
    )


def decode_frame(frame: bytes) -> DecodedFrame:
    if len(frame) != FRAME_LENGTH:
        raise FrameError(f"Expected {FRAME_LENGTH} bytes, got {len(frame)}.")
    if frame[0] != START_BYTE:
        raise FrameError(f"Bad start byte 0x{frame[0]:02X}.")
    # Byte 4 is the end marker; only its presence matters.
    code = chr(frame[1])
    value = frame[3] << 8 | frame[2]
    return DecodedFrame(location_code=code, location_label=resolve_location(code), value=value)


class FrameDecoder:
    """Byte-at-a-time accumulator turning a raw stream into decoded frames.

    With ``resync`` disabled (the default) a window whose first byte is not the
    start marker is dropped whole, so a single lost byte on the wire can keep
    the stream misaligned until a window happens to line up again. With
    ``resync`` enabled only the leading byte is dropped and the remaining bytes
    are rescanned for a start marker.

    A window is evaluated as soon as it holds ``expected_length`` bytes, so
    between calls the buffer never holds more than ``expected_length - 1``
    bytes and cannot overflow. A rejected window is discarded whole.
    """

    def __init__(
        self,
        expected_length: int = FRAME_LENGTH,
        resync: bool = False,
    ) -> None:
        if expected_length < 1:
            raise ValueError("expected_length must be positive.")
        self.expected_length = expected_length
        self.resync = resync
        self._buffer = bytearray()
        self.discarded_frames = 0

    @property
    def buffered_bytes(self) -> bytes:
        return bytes(self._buffer)

    def feed(self, byte: int) -> Optional[DecodedFrame]:
        if not 0 <= byte <= 0xFF:
            raise ValueError("feed() accepts a single byte value (0-255).")
        self._buffer.append(byte)
        if len(self._buffer) < self.expected_length:
            return None

        window = bytes(self._buffer[: self.expected_length])
        try:
            decoded = decode_frame(window)
        except FrameError as exc:
            self.discarded_frames += 1
            logger.debug("Discarding frame", extra={"reason": str(exc), "frame": window.hex()})
            if self.resync:
                self._drop_until_start()
            else:
                del self._buffer[: self.expected_length]
            return None

        del self._buffer[: self.expected_length]
        return decoded

    def feed_bytes(self, data: Iterable[int]) -> Iterator[DecodedFrame]:
        for byte in data:
            decoded = self.feed(byte)
            if decoded is not None:
                yield decoded

    def _drop_until_start(self) -> None:
        del self._buffer[0]
        while self._buffer and self._buffer[0] != START_BYTE:
            del self._buffer[0]


def decode_stream(data: bytes, resync: bool = False) -> list[DecodedFrame]:
    """Decode every complete frame found in ``data`` with a fresh decoder."""
    return list(FrameDecoder(resync=resync).feed_bytes(data))
