"""
Tunnel session state.

A session is either ``inactive`` or ``active``. It becomes active when a
tunnel process is spawned, records the connection URL once the bundler
prints it, and goes inactive on stop or when the process exits. Status,
URL and process handle always change together.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class SessionStatus(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"


@dataclass
class TunnelSession:
    platform: str
    status: SessionStatus = SessionStatus.INACTIVE
    url: Optional[str] = None
    session_id: Optional[str] = None
    started_at: Optional[datetime] = None
    process: Any = field(default=None, repr=False)

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    @classmethod
    def begin(cls, platform: str) -> "TunnelSession":
        """Create a fresh active session; the URL is not known yet."""
        return cls(
            platform=platform,
            status=SessionStatus.ACTIVE,
            session_id=uuid.uuid4().hex,
            started_at=datetime.now(timezone.utc),
        )

    def attach(self, process: Any) -> None:
        self.process = process

    def set_url(self, url: str) -> bool:
        """Record a discovered URL.

        Returns True if the URL changed. Repeats of the current URL and
        discoveries on an inactive session are ignored.
        """
        if not self.is_active or url == self.url:
            return False
        self.url = url
        return True

    def deactivate(self) -> Any:
        """Move to inactive and hand back the process handle that was owned."""
        process = self.process
        self.status = SessionStatus.INACTIVE
        self.url = None
        self.process = None
        return process

    def to_dict(self) -> dict[str, Any]:
        """Serialize the public view (never the process handle)."""
        return {
            "id": self.session_id,
            "url": self.url,
            "platform": self.platform,
            "status": self.status.value,
        }
