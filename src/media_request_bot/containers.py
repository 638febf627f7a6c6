"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from media_request_bot.adapters.overseerr_client import HttpxOverseerrClient
from media_request_bot.adapters.supabase_request_repository import (
    SupabaseRequestRepository,
)
from media_request_bot.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from media_request_bot.adapters.supabase_settings_repository import (
    SupabaseSettingsRepository,
)
from media_request_bot.adapters.telegram_client import (
    HttpxTelegramClient,
    TelegramClient,
    TelegramTransport,
)
from media_request_bot.config import Settings
from media_request_bot.services.approvals import (
    ApprovalService,
    RequestHistoryRepository,
    RequestReviewService,
)
from media_request_bot.services.cache import InMemoryCache
from media_request_bot.services.catalog import CatalogService
from media_request_bot.services.commands import StartCommandHandler
from media_request_bot.services.conversation import ConversationService
from media_request_bot.services.fulfillment import OverseerrFulfillmentService
from media_request_bot.services.policy import PolicyService
from media_request_bot.services.sessions import SessionRepository, SessionSweeper


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    telegram_client: TelegramClient
    start_command_handler: StartCommandHandler
    conversation_service: ConversationService
    session_repository: SessionRepository
    request_repository: RequestHistoryRepository
    request_review_service: RequestReviewService
    policy_service: PolicyService
    session_sweeper: SessionSweeper
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    session_repository = SupabaseSessionRepository(supabase_client)
    request_repository = SupabaseRequestRepository(supabase_client)
    settings_repository = SupabaseSettingsRepository(supabase_client)

    telegram_client = HttpxTelegramClient.create(resolved_settings.telegram_bot_token)
    overseerr_client = HttpxOverseerrClient.create(
        api_key=resolved_settings.overseerr_api_key,
        base_url=resolved_settings.overseerr_base_url,
    )
    catalog_service = CatalogService(
        client=overseerr_client,
        cache=InMemoryCache(),
        max_results=resolved_settings.max_results,
        search_ttl_seconds=resolved_settings.search_cache_ttl_seconds,
    )
    fulfillment_service = OverseerrFulfillmentService(
        client=overseerr_client,
        profile_id=resolved_settings.overseerr_profile_id,
        root_folder=resolved_settings.overseerr_root_folder,
    )
    policy_service = PolicyService(
        repository=settings_repository,
        default_policy=resolved_settings.approval_policy,
    )
    transport = TelegramTransport(telegram_client)
    reply_targets = InMemoryCache()
    session_ttl_seconds = resolved_settings.session_ttl_minutes * 60
    conversation_service = ConversationService(
        session_repository=session_repository,
        transport=transport,
        catalog=catalog_service,
        subunit_lookup=catalog_service,
        approval_service=ApprovalService(
            fulfillment=fulfillment_service, history=request_repository
        ),
        policy_store=policy_service,
        reply_targets=reply_targets,
        session_ttl_seconds=session_ttl_seconds,
    )
    session_sweeper = SessionSweeper(
        repository=session_repository,
        interval_seconds=resolved_settings.sweep_interval_seconds,
        caches=[reply_targets, catalog_service.cache],
    )
    request_review_service = RequestReviewService(
        history=request_repository,
        fulfillment=fulfillment_service,
        notifier=transport,
    )
    start_handler = StartCommandHandler(telegram_client)

    async def close_resources() -> None:
        await telegram_client.close()
        await overseerr_client.close()

    return AppContainer(
        settings=resolved_settings,
        telegram_client=telegram_client,
        start_command_handler=start_handler,
        conversation_service=conversation_service,
        session_repository=session_repository,
        request_repository=request_repository,
        request_review_service=request_review_service,
        policy_service=policy_service,
        session_sweeper=session_sweeper,
        close_resources=close_resources,
    )
