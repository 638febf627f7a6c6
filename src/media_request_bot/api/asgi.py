"""ASGI entrypoint for the media request bot API.

Serve this app from a long-running ASGI server process. Searches, submissions
and the session sweeper run as background tasks after the webhook returns, so
runtimes that freeze the process between requests are not supported.
"""

from media_request_bot.api.app import create_app
from media_request_bot.containers import build_container

app = create_app(build_container())
