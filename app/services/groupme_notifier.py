# app/services/groupme_notifier.py
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import get_settings

logger = logging.getLogger(__name__)

_PLACEHOLDER_BOT_ID = re.compile(r"your_groupme_bot_id_here", re.IGNORECASE)


class GroupMeError(RuntimeError):
    """
    Raised when a configured GroupMe call (bot post or account API) fails.
    """


def is_bot_id_configured(bot_id: Optional[str]) -> bool:
    return bool(bot_id) and not _PLACEHOLDER_BOT_ID.search(bot_id)


class GroupMeNotifier:
    """
    Posts plain-text messages into a GroupMe group through a bot.

    When no bot id is configured (or the `.env` placeholder was left in
    place) sending is a logged no-op that returns `{"skipped": True}`.
    """

    def __init__(
        self,
        bot_id: Optional[str],
        api_url: str = "https://api.groupme.com/v3",
        timeout_seconds: float = 10.0,
        access_token: Optional[str] = None,
    ) -> None:
        self._bot_id = bot_id
        self._api_url = api_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._access_token = access_token

    @property
    def is_configured(self) -> bool:
        return is_bot_id_configured(self._bot_id)

    @property
    def post_url(self) -> str:
        return f"{self._api_url}/bots/post"

    async def send_message(self, text: str) -> Dict[str, Any]:
        """
        Deliver `text` to the channel.

        Returns
        -------
        dict
            `{"skipped": True}` when not configured, otherwise the decoded
            GroupMe response (empty dict for the usual 202 with no body).

        Raises GroupMeError on transport errors or non-2xx responses.
        """
        if not self.is_configured:
            logger.warning("GROUPME_BOT_ID is not configured; skipping send. Message would be: %s", text)
            return {"skipped": True}

        logger.info("Sending message to GroupMe: %s", text)
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                resp = await client.post(
                    self.post_url,
                    json={"bot_id": self._bot_id, "text": text},
                )
        except httpx.HTTPError as exc:
            logger.error("Error sending GroupMe message: %s", exc)
            raise GroupMeError(f"GroupMe post failed: {exc}") from exc

        if resp.status_code // 100 != 2:
            logger.error("Error sending GroupMe message (status=%s): %s", resp.status_code, resp.text)
            raise GroupMeError(
                f"GroupMe post failed (status={resp.status_code}): {resp.text}"
            )

        logger.info("Message sent successfully")
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            return {}

    # --- Account API (access token) ---

    def _token_params(self) -> Dict[str, str]:
        if not self._access_token:
            raise GroupMeError("GROUPME_ACCESS_TOKEN is not configured")
        return {"token": self._access_token}

    def _unwrap(self, resp: Any, action: str) -> Any:
        if resp.status_code // 100 != 2:
            logger.error("Error %s (status=%s): %s", action, resp.status_code, resp.text)
            raise GroupMeError(f"GroupMe {action} failed (status={resp.status_code}): {resp.text}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise GroupMeError(f"GroupMe {action} returned a non-JSON body") from exc
        return payload.get("response") if isinstance(payload, dict) else None

    async def list_groups(self) -> List[Dict[str, Any]]:
        """
        Groups visible to the access token's user.

        Used to look up the group id a new bot should be registered in.
        """
        params = self._token_params()
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                resp = await client.get(f"{self._api_url}/groups", params=params)
        except httpx.HTTPError as exc:
            logger.error("Error listing GroupMe groups: %s", exc)
            raise GroupMeError(f"GroupMe list groups failed: {exc}") from exc

        groups = self._unwrap(resp, "listing groups")
        return groups if isinstance(groups, list) else []

    async def create_bot(
        self,
        group_id: str,
        name: str,
        avatar_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Register a bot in `group_id` and return its description.

        The returned dict carries the new `bot_id` under `bot`.
        """
        params = self._token_params()
        body = {
            "bot": {
                "name": name,
                "group_id": group_id,
                "avatar_url": avatar_url,
                "callback_url": "",
            }
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                resp = await client.post(f"{self._api_url}/bots", json=body, params=params)
        except httpx.HTTPError as exc:
            logger.error("Error creating GroupMe bot: %s", exc)
            raise GroupMeError(f"GroupMe create bot failed: {exc}") from exc

        bot = self._unwrap(resp, "creating bot")
        logger.info("Created GroupMe bot %r in group %s", name, group_id)
        return bot if isinstance(bot, dict) else {}


_notifier_instance: Optional[GroupMeNotifier] = None


def get_groupme_notifier() -> GroupMeNotifier:
    """
    Shared notifier wired to application settings.
    """
    global _notifier_instance
    if _notifier_instance is None:
        settings = get_settings()
        _notifier_instance = GroupMeNotifier(
            bot_id=settings.GROUPME_BOT_ID,
            api_url=settings.GROUPME_API_URL,
            timeout_seconds=settings.HTTP_TIMEOUT_SECONDS,
            access_token=settings.GROUPME_ACCESS_TOKEN,
        )
    return _notifier_instance
