"""Client helpers for the Telegram Bot API used by purchase notifications."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import requests

from .purchases.notifications import (
    NotificationButton,
    NotificationEdit,
    NotificationMessage,
)

logger = logging.getLogger(__name__)


def _serialise_for_log(data: Any, limit: int = 2000) -> str:
    """Return a JSON representation of ``data`` truncated for logging."""

    if data is None:
        return "null"
    try:
        rendered = json.dumps(data, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        rendered = repr(data)
    if len(rendered) > limit:
        return f"{rendered[:limit]}… (truncated)"
    return rendered


class TelegramClientError(RuntimeError):
    """Base error for Telegram client failures."""


class TelegramConfigurationError(TelegramClientError):
    """Raised when the client configuration is invalid."""


class TelegramTransportError(TelegramClientError):
    """Raised when the HTTP transport layer fails."""


class TelegramAPIError(TelegramClientError):
    """Raised when the Bot API answers with ``ok: false`` or an HTTP error."""

    def __init__(
        self,
        status_code: int,
        description: str,
        payload: Any | None = None,
        *,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(description)
        self.status_code = status_code
        self.description = description
        self.payload = payload
        self.context = context or {}

    def __str__(self) -> str:  # pragma: no cover - representation helper
        context_repr = f", context={self.context}" if self.context else ""
        return f"{self.description} (status={self.status_code}{context_repr})"


class TelegramClient:
    """Small helper around the Telegram Bot API."""

    DEFAULT_BASE_URL = "https://api.telegram.org"

    def __init__(
        self,
        *,
        bot_token: str,
        base_url: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        bot_token = (bot_token or "").strip()
        if not bot_token:
            raise TelegramConfigurationError(
                "TELEGRAM_BOT_TOKEN is required to talk to the Bot API."
            )
        self.bot_token = bot_token
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}/bot{self.bot_token}/{method}"
        # Never log the URL itself: it embeds the bot token.
        logger.debug("Telegram request %s payload=%s", method, _serialise_for_log(payload))
        try:
            response = requests.request(
                method="POST",
                url=url,
                json=payload or {},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Telegram transport error on %s: %s", method, type(exc).__name__)
            raise TelegramTransportError(
                f"Could not reach the Telegram Bot API ({method})"
            ) from exc

        body = self._safe_json(response)
        if response.status_code >= 400 or not isinstance(body, dict) or not body.get("ok"):
            logger.error(
                "Telegram API error %s status=%s body=%s",
                method,
                response.status_code,
                _serialise_for_log(body),
            )
            raise TelegramAPIError(
                response.status_code,
                self._extract_error_message(response, body),
                payload=body,
                context={"method": method},
            )

        logger.debug(
            "Telegram response %s status=%s body=%s",
            method,
            response.status_code,
            _serialise_for_log(body),
        )
        return body.get("result")

    @staticmethod
    def _safe_json(response: requests.Response) -> Any | None:
        try:
            return response.json()
        except ValueError:  # pragma: no cover - depends on upstream
            return None

    @staticmethod
    def _extract_error_message(response: requests.Response, body: Any) -> str:
        if isinstance(body, dict):
            description = body.get("description")
            if isinstance(description, str) and description.strip():
                return description.strip()
        text = (response.text or "").strip()
        if text:
            return text
        return f"Error {response.status_code} from the Telegram Bot API"

    def send_message(
        self,
        chat_id: str | int,
        text: str,
        *,
        reply_markup: dict[str, Any] | None = None,
        parse_mode: str = "HTML",
    ) -> dict[str, Any]:
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text, "parse_mode": parse_mode}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        return self._request("sendMessage", payload)

    def edit_message_text(
        self,
        chat_id: str | int,
        message_id: int,
        text: str,
        *,
        reply_markup: dict[str, Any] | None = None,
        parse_mode: str = "HTML",
    ) -> Any:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
            "parse_mode": parse_mode,
        }
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        return self._request("editMessageText", payload)

    def answer_callback_query(
        self, callback_query_id: str, text: str, *, show_alert: bool = False
    ) -> Any:
        return self._request(
            "answerCallbackQuery",
            {
                "callback_query_id": callback_query_id,
                "text": text,
                "show_alert": show_alert,
            },
        )

    def set_webhook(self, url: str) -> Any:
        """Register ``url`` as the bot's webhook for ``callback_query`` updates."""

        return self._request(
            "setWebhook", {"url": url, "allowed_updates": ["callback_query"]}
        )

    def get_webhook_info(self) -> dict[str, Any]:
        return self._request("getWebhookInfo")

    def delete_webhook(self) -> Any:
        """Remove the webhook so updates can be polled again."""

        return self._request("deleteWebhook")


def inline_keyboard(button: NotificationButton | None) -> dict[str, Any]:
    """Build ``reply_markup``; an empty keyboard removes existing buttons."""

    if button is None:
        return {"inline_keyboard": []}
    return {
        "inline_keyboard": [
            [{"text": button.label, "callback_data": button.callback_data}]
        ]
    }


class TelegramNotificationSink:
    """Adapter that delivers purchase notifications to a Telegram chat."""

    def __init__(self, client: TelegramClient, chat_id: str | int) -> None:
        self.client = client
        self.chat_id = str(chat_id)

    def send(self, message: NotificationMessage) -> tuple[str, int] | None:
        result = self.client.send_message(
            self.chat_id,
            message.text,
            reply_markup=inline_keyboard(message.button) if message.button else None,
        )
        if not isinstance(result, dict) or "message_id" not in result:
            logger.warning("Telegram sendMessage returned no message_id: %s", result)
            return None
        chat = result.get("chat") or {}
        return str(chat.get("id", self.chat_id)), int(result["message_id"])

    def edit(self, edit: NotificationEdit) -> None:
        self.client.edit_message_text(
            edit.chat_ref,
            edit.message_ref,
            edit.text,
            reply_markup=inline_keyboard(edit.button),
        )

    def answer_callback(self, callback_id: str, text: str) -> None:
        self.client.answer_callback_query(callback_id, text)


__all__ = [
    "TelegramAPIError",
    "TelegramClient",
    "TelegramClientError",
    "TelegramConfigurationError",
    "TelegramNotificationSink",
    "TelegramTransportError",
    "inline_keyboard",
]
