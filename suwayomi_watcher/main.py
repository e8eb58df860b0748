"""
Main entry point for Suwayomi Watcher.

Wires the components together and runs the subscription loop.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from urllib.parse import urlparse

import coloredlogs

from suwayomi_watcher.config import AppConfig, load_config, load_config_from_env
from suwayomi_watcher.dispatcher import UpdateDispatcher
from suwayomi_watcher.formatter import NotificationFormatter
from suwayomi_watcher.ledger import Ledger
from suwayomi_watcher.session import AuthError, CredentialSession, GraphQLError
from suwayomi_watcher.storage import StateStore
from suwayomi_watcher.subscriber import UpdateSubscriber
from suwayomi_watcher.subscription import GraphQLSubscriptionClient
from suwayomi_watcher.telegram import TelegramNotifier
from suwayomi_watcher.thumbnails import ThumbnailFetcher

logger = logging.getLogger(__name__)


def redact_proxy_url(proxy_url: str) -> str:
    """
    Redact credentials from a proxy URL for safe logging.

    Parameters
    ----------
    proxy_url : str
        The proxy URL potentially containing credentials.

    Returns
    -------
    str
        The proxy URL with password redacted.
    """
    try:
        parsed = urlparse(proxy_url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:****@{netloc}"
            return f"{parsed.scheme}://{netloc}{parsed.path}"
        return proxy_url
    except ValueError:
        return "<proxy url>"


class SuwayomiWatcher:
    """
    Main Suwayomi watcher application.

    Coordinates the credential session, ledger, subscription and Telegram
    notifications.
    """

    def __init__(self, config: AppConfig):
        """
        Initialize the watcher.

        Parameters
        ----------
        config : AppConfig
            Validated application configuration.
        """
        self.config = config
        self.session: CredentialSession | None = None
        self.ledger: Ledger | None = None
        self.notifier: TelegramNotifier | None = None
        self.subscriber: UpdateSubscriber | None = None

    async def start(self) -> None:
        """Start the watcher and run until stopped."""
        logger.info("Starting Suwayomi Watcher")

        watcher_config = self.config.watcher
        proxy_url = watcher_config.proxy
        if proxy_url:
            logger.info("Using proxy: %s", redact_proxy_url(proxy_url))

        self.ledger = Ledger(StateStore(self.config.storage.state_file))
        await self.ledger.load()

        self.session = CredentialSession(
            self.config.suwayomi,
            timeout=watcher_config.request_timeout,
            user_agent=watcher_config.user_agent,
            proxy_url=proxy_url,
        )
        self.notifier = TelegramNotifier(self.config.telegram, proxy_url=proxy_url)

        if not await self.notifier.test_connection():
            logger.error("Failed to connect to Telegram, exiting")
            await self.stop()
            sys.exit(1)

        await self._login()

        self.subscriber = UpdateSubscriber(
            source=GraphQLSubscriptionClient(
                self.config.suwayomi.ws_url,
                self.session,
                connect_timeout=watcher_config.connect_timeout,
            ),
            session=self.session,
            dispatcher=UpdateDispatcher(self.ledger, notify_new=watcher_config.notify_new_chapters),
            formatter=NotificationFormatter(header=watcher_config.header),
            notifier=self.notifier,
            thumbnails=ThumbnailFetcher(self.session, max_size=watcher_config.max_thumbnail_size),
            reconnect_delay=watcher_config.reconnect_delay,
            refresh_on_reconnect=watcher_config.refresh_on_reconnect,
        )

        await self.subscriber.run()

    async def _login(self) -> None:
        """Initial login and server check. Failures are not fatal."""
        if self.session is None:
            raise RuntimeError("Components not initialized")

        try:
            await self.session.refresh()
        except AuthError as e:
            logger.error("Initial login failed, will retry on reconnect: %s", e)
            return

        try:
            about = await self.session.server_info()
            logger.info(
                "Connected to %s %s",
                about.get("name", "Suwayomi"),
                about.get("version", "(unknown version)"),
            )
        except (GraphQLError, AuthError) as e:
            logger.warning("Could not query server info: %s", e)

    async def stop(self) -> None:
        """Stop the watcher gracefully."""
        logger.info("Stopping Suwayomi Watcher")

        if self.subscriber:
            self.subscriber.stop()
        if self.session:
            await self.session.close()
        if self.notifier:
            await self.notifier.close()

        logger.info("Suwayomi Watcher stopped")


def setup_logging(level: str | int = logging.INFO) -> None:
    """
    Configure application logging.

    Parameters
    ----------
    level : str | int
        Logging level name or number.
    """
    coloredlogs.install(
        level=level,
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    for name in ("httpx", "httpcore", "telegram", "websockets", "aiohttp"):
        logging.getLogger(name).setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Suwayomi library watcher with Telegram notifications",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to YAML configuration file (environment variables are used if omitted)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args()

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        if args.config:
            config = load_config(Path(args.config))
        else:
            config = load_config_from_env()
    except Exception as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    if not args.verbose:
        setup_logging(config.log_level)

    watcher = SuwayomiWatcher(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(watcher.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(watcher.start())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        loop.run_until_complete(watcher.stop())
        loop.close()


if __name__ == "__main__":
    main()
