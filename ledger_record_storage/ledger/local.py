"""
Local file-based ledger.

Stores submissions as a JSONL file on disk so a store survives
process restarts without a ledger node. Every line is one
submission:

    {"position": 12, "channel": "<hex>", "blobs": ["<base64>", ...]}
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from pathlib import Path

import aiofiles
import aiofiles.os

from ..channel import Channel
from ..exceptions import BlobFetchError, RejectedError, TransportError
from .base import LedgerClient

logger = logging.getLogger(__name__)

LEDGER_FILE = "ledger.jsonl"


class LocalFileLedger(LedgerClient):
    """Append-only ledger persisted as JSONL.

    Directory structure:
    {base_path}/
      ledger.jsonl

    The file is tailed rather than cached: ``head``, ``submit`` and
    fetches of unknown positions read any lines appended since the last
    read, so an instance sees submissions made by other processes.
    Positions are assigned by the submitting instance, so the file is
    meant for one writer process with any number of readers. If two
    writers append the same position anyway, both submissions are kept
    at that position and a warning is logged.
    """

    def __init__(self, base_path: str | Path | None = None) -> None:
        """Initialize the local ledger.

        Args:
            base_path: Directory holding the ledger file.
                Defaults to ~/.ledger_records
        """
        self.base_path = Path(base_path) if base_path else Path.home() / ".ledger_records"
        self.endpoint = str(self.base_path / LEDGER_FILE)
        self._entries: dict[int, dict[bytes, list[bytes]]] = {}
        self._head = 0
        self._offset = 0
        self._lock = asyncio.Lock()

    @property
    def ledger_file(self) -> Path:
        return self.base_path / LEDGER_FILE

    async def _refresh(self) -> None:
        """Read complete lines appended since the last refresh. Caller holds ``_lock``."""
        if not self.ledger_file.exists():
            return
        try:
            async with aiofiles.open(self.ledger_file, "rb") as f:
                await f.seek(self._offset)
                chunk = await f.read()
        except OSError as e:
            raise TransportError(self.endpoint, e) from e

        # A line still being written by another process is picked up next time.
        end = chunk.rfind(b"\n") + 1
        if end == 0:
            return
        self._offset += end

        for line in chunk[:end].splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
                position = int(entry["position"])
                channel = bytes.fromhex(entry["channel"])
                blobs = [base64.b64decode(b) for b in entry["blobs"]]
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping corrupt ledger line: {e}")
                continue
            if channel in self._entries.get(position, {}):
                logger.warning(
                    f"Position {position} written more than once for channel {entry['channel']}"
                )
            self._entries.setdefault(position, {}).setdefault(channel, []).extend(blobs)
            self._head = max(self._head, position)

    async def submit(self, channel: Channel, blobs: list[bytes]) -> int:
        if not blobs:
            raise RejectedError("empty submission", channel.hex)

        async with self._lock:
            await self._refresh()
            position = self._head + 1
            line = json.dumps(
                {
                    "position": position,
                    "channel": channel.hex,
                    "blobs": [base64.b64encode(b).decode("ascii") for b in blobs],
                }
            )
            try:
                await aiofiles.os.makedirs(self.base_path, exist_ok=True)
                async with aiofiles.open(self.ledger_file, "a") as f:
                    await f.write(line + "\n")
            except OSError as e:
                raise TransportError(self.endpoint, e) from e
            await self._refresh()

        return position

    async def fetch_all(self, position: int, channel: Channel) -> list[bytes] | None:
        if position < 0:
            raise BlobFetchError(position, "negative position")
        if position > self._head:
            async with self._lock:
                await self._refresh()
        blobs = self._entries.get(position, {}).get(channel.raw)
        return list(blobs) if blobs else None

    async def head(self) -> int:
        async with self._lock:
            await self._refresh()
        return self._head
