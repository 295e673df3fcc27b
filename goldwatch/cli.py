"""
CLI commands for GoldWatch.
"""

import argparse
import logging
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from goldwatch.app import GoldWatchApp
from goldwatch.config import load_config
from goldwatch.database.models import (
    Alert,
    ChannelKind,
    ChannelTarget,
    NotificationRecord,
    PriceSnapshot,
    build_condition,
)
from goldwatch.exceptions import AggregateFailureError, AlertValidationError
from goldwatch.main import build_app
from goldwatch.notifiers.formatters import format_idr


def add_alert(
    app: GoldWatchApp,
    alert_type: str,
    default_frequency: float,
    target_price: Optional[float] = None,
    daily_time: Optional[str] = None,
    telegram_chat_id: Optional[str] = None,
    phone_number: Optional[str] = None,
    frequency_hours: Optional[float] = None,
) -> Alert:
    """Validate and store a new alert."""
    channels = []
    if telegram_chat_id:
        channels.append(ChannelTarget(ChannelKind.TELEGRAM, telegram_chat_id))
    if phone_number:
        channels.append(ChannelTarget(ChannelKind.WHATSAPP, phone_number))

    alert = Alert(
        condition=build_condition(alert_type, target_price, daily_time),
        channels=channels,
        frequency_hours=default_frequency if frequency_hours is None else frequency_hours,
        created_at=app.clock(),
    )
    return app.gateway.create_alert(alert)


def describe_snapshot(snapshot: PriceSnapshot) -> str:
    return (
        f"{snapshot.timestamp:%Y-%m-%d %H:%M} [{snapshot.source}] "
        f"per gram {format_idr(snapshot.price_per_gram)}, "
        f"buy {format_idr(snapshot.buy_price)}, sell {format_idr(snapshot.sell_price)}"
    )


def describe_alert(alert: Alert) -> str:
    if alert.daily_time:
        rule = f"daily at {alert.daily_time}"
    else:
        rule = f"{alert.type.value} to {format_idr(alert.target_price)}"
    channels = ", ".join(f"{c.kind.value}:{c.destination}" for c in alert.channels)
    state = "active" if alert.active else "inactive"
    last = f"{alert.last_triggered_at:%Y-%m-%d %H:%M}" if alert.last_triggered_at else "never"
    return (
        f"ID: {alert.id}, {rule}, every {alert.frequency_hours:g}h, {state}, "
        f"channels [{channels}], last triggered {last}"
    )


def describe_record(record: NotificationRecord) -> str:
    line = f"{record.sent_at:%Y-%m-%d %H:%M} {record.channel} {record.status.value}"
    if record.alert_id is not None:
        line += f" (alert {record.alert_id})"
    if record.error_detail:
        line += f": {record.error_detail}"
    return line


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="GoldWatch CLI")
    parser.add_argument("--config", default="config.yaml", help="Path to config file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # Price commands
    fetch_parser = subparsers.add_parser("fetch", help="Fetch the current gold price")
    fetch_parser.add_argument("--source", help="Only try this source")
    fetch_parser.add_argument(
        "--refresh", action="store_true", help="Bypass the cache"
    )

    # Alert commands
    alerts_parser = subparsers.add_parser("alerts", help="Alert management")
    alerts_subparsers = alerts_parser.add_subparsers(dest="action")

    add_parser = alerts_subparsers.add_parser("add", help="Add alert")
    add_parser.add_argument(
        "--type", required=True, choices=["increase", "decrease", "daily"]
    )
    add_parser.add_argument("--target", type=float, help="Target price per gram")
    add_parser.add_argument("--time", help="Daily summary time, HH:MM")
    add_parser.add_argument("--telegram", help="Telegram chat ID")
    add_parser.add_argument("--whatsapp", help="WhatsApp phone number")
    add_parser.add_argument("--frequency", type=float, help="Hours between triggers")

    alerts_subparsers.add_parser("list", help="List alerts")

    remove_parser = alerts_subparsers.add_parser("remove", help="Remove alert")
    remove_parser.add_argument("--id", type=int, required=True, help="Alert ID")

    # Log commands
    logs_parser = subparsers.add_parser("logs", help="Show notification logs")
    logs_parser.add_argument("--limit", type=int, default=20, help="Number of entries")

    # Tick commands
    tick_parser = subparsers.add_parser("tick", help="Run one scheduled job now")
    tick_parser.add_argument("job", choices=["price", "daily"])

    # WhatsApp commands
    whatsapp_parser = subparsers.add_parser("whatsapp", help="WhatsApp session")
    whatsapp_subparsers = whatsapp_parser.add_subparsers(dest="action")
    whatsapp_subparsers.add_parser("status", help="Show gateway session state")

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        return

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = load_config(args.config)
    app, channels, db = build_app(config)

    try:
        if args.command == "fetch":
            try:
                snapshot = app.current_price(source=args.source, refresh=args.refresh)
            except AggregateFailureError as e:
                print(f"All sources failed: {e}")
                for source, reason in e.as_dict().items():
                    print(f"  {source}: {reason}")
            except ValueError as e:
                print(str(e))
            else:
                print(describe_snapshot(snapshot))

        elif args.command == "alerts":
            if args.action == "add":
                try:
                    alert = add_alert(
                        app,
                        args.type,
                        default_frequency=config.advanced.default_frequency(args.type),
                        target_price=args.target,
                        daily_time=args.time,
                        telegram_chat_id=args.telegram,
                        phone_number=args.whatsapp,
                        frequency_hours=args.frequency,
                    )
                except AlertValidationError as e:
                    print(f"Invalid alert: {e}")
                else:
                    print(f"Created alert with ID: {alert.id}")
            elif args.action == "list":
                for alert in app.gateway.all_alerts():
                    print(describe_alert(alert))
            elif args.action == "remove":
                if app.gateway.delete_alert(args.id):
                    print(f"Removed alert {args.id}")
                else:
                    print(f"Alert {args.id} not found")

        elif args.command == "logs":
            for record in app.gateway.notification_logs(args.limit):
                print(describe_record(record))

        elif args.command == "tick":
            channels[ChannelKind.WHATSAPP].session.sync()
            if args.job == "price":
                result = app.run_price_tick(refresh=True)
            else:
                result = app.run_daily_tick()
            if result.error:
                print(f"Tick failed: {result.error}")
            else:
                print(f"Triggered alerts: {result.triggered or 'none'}")
                for record in result.records:
                    print(describe_record(record))

        elif args.command == "whatsapp":
            if args.action == "status":
                session = channels[ChannelKind.WHATSAPP].session
                state = session.sync()
                print(f"WhatsApp session '{session.name}': {state.value}")
    finally:
        app.aggregator.close()
        db.close()


if __name__ == "__main__":
    main()
