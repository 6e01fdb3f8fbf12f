"""Base channel abstraction for chat platform integrations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict

from heyclaw.bus.events import OutboundMessage


class BaseChannel(ABC):
    """
    Base abstraction for all chat platform channels.

    One instance serves one account of one platform.
    """

    #: Channel unique identifier
    name: str = "base"

    def __init__(self, account_id: str):
        self.account_id = account_id
        self._running: bool = False

    # =============================
    # Lifecycle
    # =============================

    @abstractmethod
    async def start(self) -> None:
        """
        Start channel runtime.

        This should:
            1. Validate credentials (raise on failure)
            2. Establish network connections
            3. Start receiving messages
            4. Block until stopped
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """
        Stop channel runtime and cleanup all resources.
        """
        ...

    # =============================
    # Outbound
    # =============================

    @abstractmethod
    async def send(self, msg: OutboundMessage) -> None:
        """
        Send an agent-initiated message to the platform.

        Contract:
            - Must handle exception isolation internally
        """
        ...

    # =============================
    # Runtime state
    # =============================

    @property
    def key(self) -> str:
        return f"{self.name}:{self.account_id}"

    @property
    def is_running(self) -> bool:
        return self._running

    def get_status(self) -> Dict[str, Any]:
        return {"running": self._running}
