"""Base agent — abstract interface every conversation agent implements."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from order_bridge.models import User
from order_bridge.services.session_manager import Session


@dataclass
class Incoming:
    """One Telegram update, flattened to what the agents care about."""

    telegram_id: str
    chat_id: str
    text: str | None = None
    callback_data: str | None = None
    callback_id: str | None = None
    message_id: int | None = None
    contact_phone: str | None = None
    contact_user_id: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None

    @property
    def command(self) -> str | None:
        """``/start`` for ``/start payload`` or ``/start@bot``; ``None`` for plain text."""
        if not self.text or not self.text.startswith("/"):
            return None
        return self.text.split()[0].split("@")[0].lower()

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass
class AgentResponse:
    """Reply an agent wants sent back to the chat.

    An agent that already delivered its own messages (documents, several
    texts) returns ``AgentResponse(reply_text=None)``.
    """

    reply_text: str | None
    inline_keyboard: list[list[dict]] | None = None
    reply_keyboard: list[list[dict]] | None = None
    remove_keyboard: bool = False
    parse_mode: str | None = None
    callback_notice: str | None = None


class BaseAgent(ABC):
    """Abstract base class for the conversation agents.

    Each agent claims the updates it understands through ``accepts`` and
    turns them into an ``AgentResponse``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable agent name (used in logs and routing)."""

    @abstractmethod
    def accepts(self, incoming: Incoming) -> bool:
        """Whether this agent handles *incoming*."""

    @abstractmethod
    async def handle(
        self,
        incoming: Incoming,
        user: User,
        session: Session,
    ) -> AgentResponse:
        """Process an update and return the reply.

        Parameters
        ----------
        incoming:
            The flattened Telegram update.
        user:
            The local user row, created on first contact.
        session:
            In-memory scratch state for this user.
        """
