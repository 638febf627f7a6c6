"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from media_request_bot.api.admin import router as admin_router
from media_request_bot.api.telegram_models import TelegramUpdate
from media_request_bot.app_logging import configure_logging
from media_request_bot.config import parse_allowed_user_ids
from media_request_bot.containers import AppContainer
from media_request_bot.services.identity import hash_sender, mask_sender
from media_request_bot.telegram_commands import CHAT_MENU_BUTTON, telegram_commands

_COMMANDS_HANDLED_LOCALLY = ("/start", "/help")


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)
    allowed_user_ids = parse_allowed_user_ids(
        container.settings.telegram_allowed_user_ids
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        try:
            await state_container.telegram_client.set_my_commands(telegram_commands())
            await state_container.telegram_client.set_chat_menu_button(
                CHAT_MENU_BUTTON
            )
        except Exception:
            logger.exception("Failed to sync Telegram bot commands")
        state_container.session_sweeper.start()
        yield
        await state_container.session_sweeper.stop()
        await state_container.conversation_service.join_background_tasks()
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/telegram/webhook")
    async def telegram_webhook(
        update: TelegramUpdate, request: Request
    ) -> dict[str, str]:
        """Handle Telegram webhook updates."""
        state_container: AppContainer = request.app.state.container
        message = update.message
        if message is None or not message.text:
            return {"status": "ok"}

        user_id = message.from_user.id
        if not _is_user_allowed(user_id, allowed_user_ids):
            await state_container.telegram_client.send_message(
                chat_id=message.chat.id,
                text="This bot is private.",
            )
            return {"status": "ok"}

        text = message.text.strip()
        if text.startswith(_COMMANDS_HANDLED_LOCALLY):
            await state_container.start_command_handler.handle(
                chat_id=message.chat.id, command=text
            )
            return {"status": "ok"}

        sender_hash = hash_sender(user_id, state_container.settings.identity_salt)
        try:
            reply = await state_container.conversation_service.process_message(
                sender_hash, text, reply_to=message.chat.id
            )
            reply_text = reply.text
        except Exception as exc:
            logger.exception(
                "Failed to process message",
                extra={"sender": mask_sender(user_id)},
            )
            reply_text = _format_error(
                state_container, exc, "Sorry, something went wrong. Please try again."
            )
        await state_container.telegram_client.send_message(
            chat_id=message.chat.id, text=reply_text
        )
        return {"status": "ok"}

    return app


def _is_user_allowed(user_id: int, allowed: set[int] | None) -> bool:
    """Return true when the user is allowed to interact with the bot."""
    return allowed is None or user_id in allowed


def _format_error(state_container: AppContainer, exc: Exception, fallback: str) -> str:
    """Return a user-facing error message with local debug info."""
    if state_container.settings.environment == "local":
        detail = f"{type(exc).__name__}: {exc}".strip()
        if detail:
            return f"{fallback} (debug: {detail})"
    return fallback
