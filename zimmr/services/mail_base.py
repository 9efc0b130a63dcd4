"""
ZIMMR Backend — Abstract Mail Transport Interface
==================================================

What:  Abstract base class defining the contract for outgoing email delivery.
Why:   NotificationService composes messages; a transport delivers them. The
       SMTP transport is the production implementation; tests substitute
       their own without touching message composition.
Who:   NotificationService (and through it, appointment and invoice flows).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class EmailAttachment:
    filename: str
    content: bytes
    mime_type: str = "application/pdf"


@dataclass
class OutgoingEmail:
    """A fully composed message, independent of any transport."""
    to: str
    subject: str
    text: str
    html: Optional[str] = None
    attachments: List[EmailAttachment] = field(default_factory=list)


class MailTransport(ABC):
    """
    Contract:
        - send() delivers one message or raises NotificationError /
          CircuitBreakerOpenError
        - send() returns False (without raising) when delivery is disabled
          by configuration
        - status() is a cheap, non-network probe for the health endpoint
    """

    @abstractmethod
    async def send(self, email: OutgoingEmail) -> bool:
        ...

    @abstractmethod
    def status(self) -> str:
        """One of: configured, disabled, circuit_open."""
        ...
