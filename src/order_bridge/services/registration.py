"""Registration — linking local users to ERP counterparties.

``reset`` is the single routine that forgets a user's registration.  It
is reached both from the ERP's counterparty-delete webhook and from the
order flow when a linked counterparty turns out to be gone.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from order_bridge.database.repository import DraftOrderRepository, UserRepository
from order_bridge.exceptions import CounterpartyDeletedError, DraftIncompleteError, ErpNotFoundError
from order_bridge.models import User
from order_bridge.services.erp_client import ErpGateway
from order_bridge.services.i18n import translate
from order_bridge.services.telegram import TelegramChannel

logger = logging.getLogger(__name__)


def normalize_phone(raw: str) -> str:
    """Telegram sends contacts with or without the leading ``+``."""
    digits = "".join(ch for ch in raw if ch.isdigit())
    return f"+{digits}" if digits else ""


class RegistrationService:
    def __init__(
        self,
        db_session: AsyncSession,
        gateway: ErpGateway,
        channel: TelegramChannel,
    ) -> None:
        self._users = UserRepository(db_session)
        self._drafts = DraftOrderRepository(db_session)
        self._gateway = gateway
        self._channel = channel

    async def get_or_create_customer(self, user: User) -> str:
        """Return the ERP counterparty id for *user*, linking or creating one.

        Raises
        ------
        DraftIncompleteError
            ``not_registered`` when the user never shared a phone number.
        CounterpartyDeletedError
            The cached counterparty no longer exists; the link is dropped.
        ErpError
            Any other ERP failure.
        """
        if not user.phone_number:
            raise DraftIncompleteError("not_registered")

        if user.counterparty_id:
            try:
                await self._gateway.get_counterparty(user.counterparty_id)
            except ErpNotFoundError:
                deleted_id = user.counterparty_id
                logger.warning("Counterparty %s of user %s is gone", deleted_id, user.telegram_id)
                await self._users.unlink_counterparty(user)
                raise CounterpartyDeletedError(deleted_id) from None
            return user.counterparty_id

        existing = await self._gateway.find_counterparty_by_phone(user.phone_number)
        if existing:
            logger.info("Claiming counterparty %s for user %s", existing, user.telegram_id)
            await self._users.link_counterparty(user, existing)
            await self._gateway.update_counterparty_identity(existing, user.telegram_id, user.username)
            return existing

        created = await self._gateway.create_counterparty(
            user.display_name, user.phone_number, user.telegram_id, user.username
        )
        await self._users.link_counterparty(user, created)
        return created

    async def register_contact(self, user: User, phone: str) -> str:
        """Store the shared phone number and resolve the counterparty."""
        user.phone_number = normalize_phone(phone)
        try:
            return await self.get_or_create_customer(user)
        except CounterpartyDeletedError:
            # The stale link is already dropped; resolve again by phone.
            return await self.get_or_create_customer(user)

    async def reset(self, user: User, *, notify: bool = True) -> None:
        """Forget the user's registration and any draft in progress."""
        await self._users.reset_registration(user)
        await self._drafts.delete_for_user(user.id)
        logger.info("Registration reset for user %s", user.telegram_id)
        if notify:
            await self._channel.send_text(
                user.telegram_id,
                translate(user.language, "counterparty_deleted"),
                remove_keyboard=True,
            )
