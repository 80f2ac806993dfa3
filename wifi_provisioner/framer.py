"""Message framer for chunked BLE notifications.

The MessageFramer collects notification chunks per logical channel and
releases a complete JSON text once the buffered content closes with '}'.
"""

import logging
from typing import Dict, Iterable, Optional

from .constants import RESPONSE_CHANNEL, STATUS_CHANNEL

logger = logging.getLogger(__name__)


class MessageFramer:
    """Reassembles notification chunks into complete JSON messages.

    Each channel owns a single buffer. A buffer is complete when its
    right-trimmed text ends with '}'; the text is then returned and the
    buffer cleared. JSON well-formedness is not checked here.

    The device must send each logical message as its own notification
    burst. Two objects concatenated before a drain are released as one
    message, since only the closing brace is detected.
    """

    def __init__(self, channels: Iterable[str] = (RESPONSE_CHANNEL, STATUS_CHANNEL)):
        """Initialize the framer.

        Args:
            channels: Logical channel names to keep buffers for
        """
        self._buffers: Dict[str, str] = {name: '' for name in channels}

    def feed(self, channel: str, chunk: bytes) -> Optional[str]:
        """Append a chunk to a channel buffer.

        Args:
            channel: Logical channel the chunk arrived on
            chunk: Raw notification bytes (UTF-8)

        Returns:
            The complete message text, or None while still accumulating
        """
        if channel not in self._buffers:
            raise ValueError(f"Unknown channel '{channel}'")

        text = chunk.decode('utf-8', errors='replace')
        buffered = self._buffers[channel] + text
        logger.debug(f"{channel} chunk: {len(text)} chars ({len(buffered)} buffered)")

        if buffered.rstrip().endswith('}'):
            self._buffers[channel] = ''
            logger.debug(f"Complete {channel} message: {len(buffered)} chars")
            return buffered

        self._buffers[channel] = buffered
        return None

    def pending(self, channel: str) -> str:
        """Return the partial text buffered for a channel."""
        return self._buffers[channel]

    def clear(self, channel: Optional[str] = None) -> None:
        """Drop buffered text for one channel, or all channels."""
        if channel is None:
            for name in self._buffers:
                self._buffers[name] = ''
        else:
            self._buffers[channel] = ''

    @property
    def channels(self) -> tuple:
        return tuple(self._buffers)
