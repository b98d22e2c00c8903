"""Register, inspect or remove the Telegram webhook that receives button presses."""
from __future__ import annotations

import argparse
import logging
import os
from typing import Sequence

from dotenv import load_dotenv

from .logging_config import configure_logging
from .telegram_client import TelegramClient, TelegramClientError

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/api/telegram/webhook"


def webhook_url(base_url: str) -> str:
    """Append the webhook route unless ``base_url`` already points at it."""

    url = base_url.strip().rstrip("/")
    if url.endswith(WEBHOOK_PATH):
        return url
    return f"{url}{WEBHOOK_PATH}"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "command",
        nargs="?",
        choices=("set", "delete", "info"),
        default="set",
        help="Action to perform (defaults to set)",
    )
    parser.add_argument(
        "--url",
        default=os.getenv("TELEGRAM_WEBHOOK_URL"),
        help="Public base URL of the API or the full webhook URL "
        "(defaults to TELEGRAM_WEBHOOK_URL)",
    )
    parser.add_argument(
        "--token",
        default=os.getenv("TELEGRAM_BOT_TOKEN"),
        help="Bot token (defaults to TELEGRAM_BOT_TOKEN)",
    )
    return parser.parse_args(argv)


def run(client: TelegramClient, command: str, url: str | None = None) -> None:
    current = client.get_webhook_info() or {}
    logger.info("Current webhook: %s", current.get("url") or "not set")

    if command == "info":
        return
    if command == "delete":
        client.delete_webhook()
        logger.info("Webhook removed")
        return
    if not url:
        raise ValueError("A webhook URL is required (--url or TELEGRAM_WEBHOOK_URL)")
    target = webhook_url(url)
    client.set_webhook(target)
    logger.info("Webhook registered at %s", target)


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    configure_logging(os.getenv("LOG_LEVEL", "INFO"), os.getenv("LOG_FILE"))
    args = parse_args(argv)

    try:
        client = TelegramClient(
            bot_token=args.token or "",
            base_url=os.getenv("TELEGRAM_API_BASE_URL"),
        )
        run(client, args.command, args.url)
    except (TelegramClientError, ValueError) as exc:
        logger.error("Webhook %s failed: %s", args.command, exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
