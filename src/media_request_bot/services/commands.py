"""Command handlers for Telegram updates."""

from dataclasses import dataclass

from media_request_bot.adapters.telegram_client import TelegramClient

WELCOME_TEXT = (
    "Welcome to Media Request Bot! "
    "Tell me what you'd like to watch, e.g. \"I want to watch Inception\" "
    "or \"Find Breaking Bad series\"."
)
HELP_TEXT = (
    "How it works:\n"
    "1. Send a title, optionally with \"movie\" or \"series\".\n"
    "2. Reply with the number of the right result.\n"
    "3. For series, pick seasons like \"1,2\" or ALL.\n"
    "4. Reply YES to confirm.\n\n"
    "Send CANCEL at any time to start over."
)


@dataclass
class StartCommandHandler:
    """Handle the /start and /help Telegram commands."""

    telegram_client: TelegramClient

    async def handle(self, chat_id: int, command: str = "/start") -> None:
        """Send the welcome text or the usage guide."""
        text = HELP_TEXT if command.startswith("/help") else WELCOME_TEXT
        await self.telegram_client.send_message(chat_id=chat_id, text=text)
