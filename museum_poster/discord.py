"""Discord notifications for published posts.

Messages go to a channel through the bot REST API. Notification is
best-effort: the Notifier never lets a delivery failure escape.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any

from museum_poster.errors import NotificationError

logger = logging.getLogger(__name__)

DISCORD_API = "https://discord.com/api/v10"


class DiscordChannel:
    """Sends plain text messages to one Discord channel."""

    def __init__(
        self,
        bot_token: str,
        channel_id: str,
        live: bool = False,
        timeout: float = 30.0,
    ) -> None:
        self.bot_token = bot_token
        self.channel_id = channel_id
        self._live = live
        self._timeout = timeout
        self._sent: list[dict[str, Any]] = []

    def _send_to_channel(self, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a message payload to the channel."""
        data = json.dumps(payload).encode("utf-8")
        req = urllib.request.Request(
            f"{DISCORD_API}/channels/{self.channel_id}/messages",
            data=data,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bot {self.bot_token}",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                body = resp.read().decode("utf-8")
                if body:
                    return json.loads(body)
                return {"ok": True, "status": resp.status}
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            raise NotificationError(
                f"Discord API error {exc.code}: {body}"
            ) from exc
        except urllib.error.URLError as exc:
            raise NotificationError(
                f"Discord connection error: {exc.reason}"
            ) from exc
        except (OSError, ValueError) as exc:
            # Read timeouts, resets and non-JSON replies
            raise NotificationError(f"Discord delivery error: {exc}") from exc

    def send(self, content: str) -> dict[str, Any]:
        if not self.channel_id:
            raise NotificationError("No Discord channel configured")
        result: dict[str, Any] = {
            "content": content,
            "channel_id": self.channel_id,
            "id": len(self._sent) + 1,
        }

        if self._live:
            result["api_response"] = self._send_to_channel({"content": content})

        self._sent.append(result)
        return result

    @property
    def messages_sent(self) -> int:
        return len(self._sent)


class Notifier:
    """Relays publish results to a channel, logging instead of raising."""

    def __init__(self, channel: DiscordChannel, notify_when_empty: bool = False) -> None:
        self.channel = channel
        self.notify_when_empty = notify_when_empty

    def _deliver(self, content: str) -> NotificationError | None:
        try:
            self.channel.send(content)
        except NotificationError as exc:
            logger.warning("Notification not delivered: %s", exc)
            return exc
        logger.info("Posted to Discord channel %s", self.channel.channel_id)
        return None

    def notify_published(self, url: str) -> NotificationError | None:
        return self._deliver(url)

    def notify_nothing_to_publish(self) -> NotificationError | None:
        if not self.notify_when_empty:
            return None
        return self._deliver("No skins left to post to Bluesky")
