# ordersheet/send/transport.py
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Tuple


@dataclass
class OrderEmail:
    to: str
    subject: str
    body: str = ""
    cc: str = ""
    attachments: List[Tuple[str, bytes]] = field(default_factory=list)  # (file name, content)


class MailTransport(ABC):
    """
    Abstract mail transport. Delivery itself lives outside the engine; an
    implementation must honour `timeout` and raise on any failure.
    """

    @abstractmethod
    def send(self, message: OrderEmail, timeout: float) -> None:
        raise NotImplementedError


class InMemoryTransport(MailTransport):
    """Collects messages instead of delivering them."""

    def __init__(self):
        self.sent: List[OrderEmail] = []

    def send(self, message: OrderEmail, timeout: float) -> None:
        self.sent.append(message)
