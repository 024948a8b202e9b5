"""HTTP endpoint receiving Jellyfin webhook notifications."""

from __future__ import annotations

from aiohttp import web

from .adapters import decode_jellyfin_event, decode_notification_type
from .errors import ValidationError
from .log import get_logger
from .notifications import TRACKED_NOTIFICATION, IngestOutcome, NotificationService

logger = get_logger(__name__)

SERVICE_KEY = web.AppKey("notification_service", NotificationService)

_RESPONSES: dict[IngestOutcome, tuple[int, str]] = {
    IngestOutcome.IGNORED_TYPE: (200, "OK: Notification type ignored."),
    IngestOutcome.NOT_CONFIGURED: (
        404,
        "Error: Guild configuration incomplete for notifications.",
    ),
    IngestOutcome.IGNORED_ITEM: (200, "OK: ItemType ignored."),
    IngestOutcome.DEBOUNCED: (200, "OK: Notification received and debounced."),
}


async def jellyfin_webhook(request: web.Request) -> web.Response:
    guild_id = request.match_info["guild_id"]
    service = request.app[SERVICE_KEY]
    try:
        body = await request.read()
        # Untracked types are accepted whatever shape the rest of the body has.
        if decode_notification_type(body) != TRACKED_NOTIFICATION:
            outcome = IngestOutcome.IGNORED_TYPE
        else:
            outcome = await service.ingest(guild_id, decode_jellyfin_event(body))
    except ValidationError as exc:
        logger.warning("webhook.invalid_payload", guild_id=guild_id, error=str(exc))
        return web.Response(status=400, text="Error: Invalid payload.")
    except Exception:
        logger.exception("webhook.error", guild_id=guild_id)
        return web.Response(status=500, text="Internal Server Error")

    status, text = _RESPONSES[outcome]
    logger.debug("webhook.handled", guild_id=guild_id, outcome=outcome.value)
    return web.Response(status=status, text=text)


def create_app(service: NotificationService) -> web.Application:
    app = web.Application()
    app[SERVICE_KEY] = service
    app.router.add_post("/jellyfin-webhook/{guild_id}", jellyfin_webhook)
    return app


class WebhookServer:
    """Runs the aiohttp app on the bot's event loop."""

    def __init__(self, service: NotificationService, *, host: str, port: int) -> None:
        self._app = create_app(service)
        self._host = host
        self._port = port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        logger.info("webhook.listening", host=self._host, port=self._port)

    async def close(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
