"""
Channel identifiers.

A channel scopes every blob that belongs to one logical store.
Each deployment uses exactly one fixed identifier width.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass

from .exceptions import InvalidChannelError

DEFAULT_CHANNEL_WIDTH = 10


@dataclass(frozen=True)
class Channel:
    """A fixed-width channel (namespace) identifier.

    Attributes:
        raw: Identifier bytes, exactly ``width`` long
        width: Configured identifier width for this deployment
    """

    raw: bytes
    width: int = DEFAULT_CHANNEL_WIDTH

    def __post_init__(self) -> None:
        if self.width <= 0:
            raise InvalidChannelError(self.raw.hex(), "width must be positive", self.width)
        if len(self.raw) != self.width:
            raise InvalidChannelError(
                self.raw.hex(),
                f"expected {self.width} bytes, got {len(self.raw)}",
                self.width,
            )

    @classmethod
    def from_plaintext(cls, text: str, width: int = DEFAULT_CHANNEL_WIDTH) -> Channel:
        """Build a channel from a short name, zero-padded on the left.

        Raises:
            InvalidChannelError: If the encoded name is empty or too long
        """
        encoded = text.encode("utf-8")
        if not encoded:
            raise InvalidChannelError(text, "channel name is empty", width)
        if len(encoded) > width:
            raise InvalidChannelError(
                text, f"name is {len(encoded)} bytes, maximum is {width}", width
            )
        return cls(raw=encoded.rjust(width, b"\x00"), width=width)

    @classmethod
    def from_hex(cls, value: str, width: int = DEFAULT_CHANNEL_WIDTH) -> Channel:
        """Build a channel from its hex form (``0x`` prefix optional)."""
        cleaned = value[2:] if value.startswith("0x") else value
        try:
            raw = bytes.fromhex(cleaned)
        except ValueError as e:
            raise InvalidChannelError(value, f"not valid hex: {e}", width) from e
        return cls(raw=raw, width=width)

    @property
    def hex(self) -> str:
        return self.raw.hex()

    @property
    def label(self) -> str:
        """Human-readable form: the padded name if printable, else hex."""
        stripped = self.raw.lstrip(b"\x00")
        try:
            text = stripped.decode("utf-8")
        except UnicodeDecodeError:
            return self.hex
        return text if text.isprintable() and text else self.hex

    def to_base64(self) -> str:
        return base64.b64encode(self.raw).decode("ascii")

    def __str__(self) -> str:
        return self.label
