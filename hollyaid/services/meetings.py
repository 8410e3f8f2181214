"""
Meeting-room provisioning for approved bookings.

Rooms are opaque identifiers; the video provider issues join tokens
separately when a participant opens the room.
"""
import secrets
import time

from hollyaid.config import settings
from hollyaid.models.booking import Booking


class MeetingRoomProvisioner:
    def __init__(self, prefix: str | None = None):
        self.prefix = settings.MEETING_ROOM_PREFIX if prefix is None else prefix

    async def provision(self, booking: Booking) -> str:
        """Return a unique room name for ``booking``."""
        return f"{self.prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"
