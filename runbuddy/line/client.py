import logging

import httpx

from runbuddy.models import EventSource, RewardImage

logger = logging.getLogger(__name__)

API_URL = "https://api.line.me/v2/bot"
DATA_API_URL = "https://api-data.line.me/v2/bot"


class LineAPIError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def text_message(text: str) -> dict:
    return {"type": "text", "text": text}


def image_message(image: RewardImage) -> dict:
    return {
        "type": "image",
        "originalContentUrl": image.original_url,
        "previewImageUrl": image.preview_url,
    }


class LineClient:
    def __init__(self, http_client: httpx.AsyncClient, access_token: str):
        self._http = http_client
        self._access_token = access_token

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    def _check_error(self, resp: httpx.Response, action: str) -> None:
        if resp.status_code == 200:
            return
        if resp.status_code == 401:
            logger.error(
                "LINE API auth failed (401): channel access token expired or invalid. "
                "Reissue it in the LINE Developers console → Messaging API"
            )
        raise LineAPIError(
            f"line_{action}_error {resp.status_code} {resp.text[:180]}",
            status_code=resp.status_code,
        )

    async def reply(self, reply_token: str, messages: list[dict]) -> None:
        """Send up to five message objects through a reply token.

        Reply tokens are single-use and expire shortly after the event; a
        failed reply raises LineAPIError and is never retried.
        """
        payload = {"replyToken": reply_token, "messages": messages}
        resp = await self._http.post(
            f"{API_URL}/message/reply",
            json=payload,
            headers={**self._headers, "Content-Type": "application/json"},
        )
        if resp.status_code != 200:
            logger.error("Reply failed %s: %s", resp.status_code, resp.text)
        self._check_error(resp, "reply")
        logger.info("Outgoing reply (%d parts): %s", len(messages), str(messages[0].get("text", ""))[:80])

    async def get_bot_user_id(self) -> str:
        resp = await self._http.get(f"{API_URL}/info", headers=self._headers)
        self._check_error(resp, "bot_info")
        return resp.json()["userId"]

    async def get_display_name(self, source: EventSource) -> str | None:
        """Profile display name for the event's sender; None when unavailable."""
        if not source.user_id:
            return None
        if source.type == "user":
            url = f"{API_URL}/profile/{source.user_id}"
        elif source.type == "group" and source.group_id:
            url = f"{API_URL}/group/{source.group_id}/member/{source.user_id}"
        elif source.type == "room" and source.room_id:
            url = f"{API_URL}/room/{source.room_id}/member/{source.user_id}"
        else:
            return None
        try:
            resp = await self._http.get(url, headers=self._headers)
            self._check_error(resp, "profile")
            data = resp.json()
            return data.get("displayName") if isinstance(data, dict) else None
        except (httpx.HTTPError, LineAPIError, ValueError):
            logger.debug("Profile lookup failed for %s", source.user_id, exc_info=True)
            return None

    async def get_message_content(self, message_id: str) -> bytes:
        resp = await self._http.get(
            f"{DATA_API_URL}/message/{message_id}/content",
            headers=self._headers,
        )
        self._check_error(resp, "content")
        return resp.content
