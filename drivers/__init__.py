from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Generic, TypeVar

from pydantic import BaseModel

from services.message import InboundEvent

T = TypeVar("T", bound=BaseModel)

EventHandler = Callable[[InboundEvent], Awaitable]


class BaseDriver(ABC, Generic[T]):
    """A message source: delivers InboundEvents and can message its owner."""

    def __init__(self, config: T):
        self.config: T = config
        self.handler: EventHandler | None = None

    def set_handler(self, handler: EventHandler) -> None:
        """Route every inbound event to *handler*."""
        self.handler = handler

    @abstractmethod
    async def start(self):
        """Connect and deliver events until cancelled."""

    @abstractmethod
    async def send_self(self, text: str):
        """Send *text* to the operator's own chat."""
