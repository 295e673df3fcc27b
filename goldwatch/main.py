"""
Main application entry point.
"""

import logging
from datetime import datetime, timedelta

from dotenv import load_dotenv

load_dotenv()

from goldwatch.app import GoldWatchApp
from goldwatch.config import AppConfig
from goldwatch.data.aggregator import FallbackAggregator
from goldwatch.data.cache import PriceCache
from goldwatch.data.sources import build_sources
from goldwatch.database.connection import Database
from goldwatch.database.models import ChannelKind
from goldwatch.database.repository import PersistenceGateway
from goldwatch.notifiers.base import ChannelFactory, NotificationChannel
from goldwatch.notifiers.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


def build_app(
    config: AppConfig,
) -> tuple[GoldWatchApp, dict[ChannelKind, NotificationChannel], Database]:
    """
    Wire every component from configuration.

    Returns:
        The pipeline, the channels it sends on, and the open database
    """
    tz = config.tz

    def clock() -> datetime:
        return datetime.now(tz)

    db = Database(config.database.path)
    db.initialize()
    gateway = PersistenceGateway(db, clock=clock)

    sources_config = config.sources
    aggregator = FallbackAggregator(
        sources=build_sources(sources_config),
        cache=PriceCache(clock, ttl=timedelta(minutes=sources_config.cache_ttl_minutes)),
        clock=clock,
        timeout=sources_config.timeout_seconds,
    )

    channels = ChannelFactory.create_all(config.notifications)
    dispatcher = NotificationDispatcher(channels, gateway, clock)

    app = GoldWatchApp(
        gateway=gateway,
        aggregator=aggregator,
        dispatcher=dispatcher,
        clock=clock,
        stale_after=timedelta(hours=sources_config.stale_after_hours),
    )
    return app, channels, db


def main():
    """Service entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="GoldWatch gold price alert service")
    parser.add_argument(
        "--config", default="config.yaml", help="Path to config file"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument(
        "--no-api", action="store_true", help="Run the scheduler without the HTTP server"
    )
    parser.add_argument(
        "--once", action="store_true", help="Run one price and daily tick, then exit"
    )

    args = parser.parse_args()

    # Load config
    from goldwatch.config import load_config

    config = load_config(args.config)

    # Setup logging
    if args.debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, config.advanced.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app, channels, db = build_app(config)

    whatsapp = channels.get(ChannelKind.WHATSAPP)
    if whatsapp is not None:
        state = whatsapp.session.sync()
        logger.info(f"WhatsApp session is {state.value}")

    if args.once:
        try:
            app.run_price_tick()
            app.run_daily_tick()
        finally:
            app.aggregator.close()
            db.close()
        return

    if config.schedule.refresh_on_startup:
        logger.info("Running startup price refresh")
        result = app.run_price_tick()
        if result.error:
            logger.warning(f"Startup refresh failed: {result.error}")

    from goldwatch.scheduler import setup_scheduler

    serve_api = config.api.enabled and not args.no_api
    scheduler = setup_scheduler(
        app,
        config.schedule,
        blocking=not serve_api,
        whatsapp_session=whatsapp.session if whatsapp is not None else None,
    )

    try:
        if serve_api:
            import uvicorn

            from goldwatch.api.app import create_app
            from goldwatch.api.deps import AppState

            scheduler.start()
            api = create_app(AppState(pipeline=app, config=config, channels=channels))
            uvicorn.run(api, host=config.api.host, port=config.api.port)
        else:
            scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down")
    finally:
        if scheduler.running:
            scheduler.shutdown(wait=False)
        app.aggregator.close()
        db.close()


if __name__ == "__main__":
    main()
