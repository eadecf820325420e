"""Interactive CLI chat simulator — drive the bot without Telegram.

Outgoing bot messages are printed instead of sent.  ERP calls go to the
configured ERP account, so set ERP_TOKEN in .env first.
"""

import asyncio
import itertools
from typing import Any

from order_bridge.database.engine import async_session_factory, init_db
from order_bridge.services.erp_client import ErpGateway
from order_bridge.services.message_router import MessageRouter
from order_bridge.services.session_manager import SessionManager
from order_bridge.services.telegram import TelegramChannel

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
DIM = "\033[2m"
BOLD = "\033[1m"
RESET = "\033[0m"


class ConsoleChannel(TelegramChannel):
    """Prints Bot API calls to the terminal."""

    def __init__(self) -> None:
        super().__init__(token="console")

    async def _call(self, method: str, payload: dict[str, Any], files=None) -> bool:
        if method == "answerCallbackQuery":
            if payload.get("text"):
                print(f"{DIM}(notice) {payload['text']}{RESET}")
            return True
        if files:
            name = next(iter(files.values()))[0]
            print(f"{GREEN}{BOLD}Bot:{RESET} 📎 {name}")
            return True

        text = payload.get("text")
        if text:
            print(f"{GREEN}{BOLD}Bot:{RESET} {text}")
        markup = payload.get("reply_markup") or {}
        for row in markup.get("inline_keyboard") or []:
            print("     " + "  ".join(f"[{b['text']} → cb:{b.get('callback_data', b.get('url', ''))}]" for b in row))
        for row in markup.get("keyboard") or []:
            print("     " + "  ".join(f"<{b['text']}>" for b in row))
        print()
        return True


def build_update(update_id: int, user_id: int, line: str) -> dict[str, Any]:
    sender = {"id": user_id, "first_name": "Console"}
    if line.startswith("cb:"):
        return {
            "update_id": update_id,
            "callback_query": {
                "id": str(update_id),
                "from": sender,
                "data": line[3:],
                "message": {"message_id": update_id, "chat": {"id": user_id}},
            },
        }

    message: dict[str, Any] = {"message_id": update_id, "from": sender, "chat": {"id": user_id}}
    if line.startswith("contact "):
        message["contact"] = {"phone_number": line.split(maxsplit=1)[1], "user_id": user_id}
    elif line.startswith("loc "):
        lat, lng = line.split(maxsplit=1)[1].split(",")
        message["location"] = {"latitude": float(lat), "longitude": float(lng)}
    else:
        message["text"] = line
    return {"update_id": update_id, "message": message}


async def main() -> None:
    print(f"\n{BOLD}{'=' * 52}")
    print("  🤖  Order Bridge — Chat Simulator")
    print(f"{'=' * 52}{RESET}\n")

    await init_db()

    print(f"{DIM}Tip: 'contact +998901234567' shares a phone number{RESET}")
    print(f"{DIM}     'loc 41.31,69.28' shares a location{RESET}")
    print(f"{DIM}     'cb:<data>' presses an inline button{RESET}")
    print(f"{DIM}     Type 'quit' to exit{RESET}\n")

    raw_id = input(f"{YELLOW}Telegram user id to simulate: {RESET}").strip()
    user_id = int(raw_id) if raw_id.isdigit() else 100001
    print(f"{DIM}Simulating as {user_id}{RESET}\n")

    router = MessageRouter(SessionManager(), ErpGateway(), ConsoleChannel())
    update_ids = itertools.count(1)

    while True:
        try:
            user_input = input(f"{BLUE}{BOLD}You:{RESET} ").strip()
        except (KeyboardInterrupt, EOFError):
            print(f"\n{DIM}Goodbye!{RESET}")
            break

        if not user_input:
            continue
        if user_input.lower() == "quit":
            print(f"{DIM}Goodbye!{RESET}")
            break

        async with async_session_factory() as db_session:
            await router.route(build_update(next(update_ids), user_id, user_input), db_session)
            await db_session.commit()


if __name__ == "__main__":
    asyncio.run(main())
