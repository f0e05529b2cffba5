"""通知出口：日志 / Slack Incoming Webhook。

通知是“尽力而为”的：发送失败只记日志，不向调用方抛异常；
在事件循环里调用时不阻塞循环。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import requests

from shared.utils.logging import setup_logger


class Notifier(Protocol):
    def notify(self, message: str, *attachments: dict[str, Any]) -> None: ...


def _attachment_text(attachment: dict[str, Any]) -> str:
    title = attachment.get("title")
    fields = attachment.get("fields")
    if fields:
        body = ", ".join(f"{f['title']}={f['value']}" for f in fields)
        return f"{title} ({body})" if title else body
    if title:
        return str(title)
    return ", ".join(f"{k}={v}" for k, v in attachment.items())


class LoggingNotifier:
    """只写日志的通知出口（默认）。"""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or setup_logger("notify")

    def notify(self, message: str, *attachments: dict[str, Any]) -> None:
        if attachments:
            extra = " | ".join(_attachment_text(a) for a in attachments)
            self.logger.info(f"{message} | {extra}")
        else:
            self.logger.info(message)


class SlackWebhookNotifier:
    """
    Parameters
    ----------
    webhook_url:
        Slack Incoming Webhook 地址。
    timeout:
        HTTP 超时（秒）。
    """

    def __init__(self, webhook_url: str, timeout: float = 5.0, session: requests.Session | None = None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = setup_logger("notify-slack")
        self._pending: set[asyncio.Future] = set()

    def notify(self, message: str, *attachments: dict[str, Any]) -> None:
        """在事件循环内调用时把 HTTP 请求放进 executor，立即返回；否则同步发送。"""
        payload: dict[str, Any] = {"text": message}
        if attachments:
            payload["attachments"] = [self._to_slack(a) for a in attachments]
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._post(payload)
            return
        future = loop.run_in_executor(None, self._post, payload)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    def _post(self, payload: dict[str, Any]) -> None:
        try:
            resp = self.session.post(self.webhook_url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            self.logger.warning(f"Slack notify failed: {exc}")

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def aclose(self) -> None:
        """等待已发出的通知请求结束。"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @staticmethod
    def _to_slack(attachment: dict[str, Any]) -> dict[str, Any]:
        if "fields" in attachment or "title" in attachment:
            return attachment
        # K 线快照：把键值对转成 fields
        return {
            "fields": [
                {"title": str(k), "value": str(v), "short": True}
                for k, v in attachment.items()
            ]
        }


def build_notifier(webhook_url: str | None = None, timeout: float = 5.0) -> Notifier:
    if webhook_url:
        return SlackWebhookNotifier(webhook_url, timeout=timeout)
    return LoggingNotifier()
