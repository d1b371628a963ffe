"""
Completion Notifier - transactional email through the Resend REST API
"""

from html import escape
from typing import Optional

import httpx

from motionswap.config.settings import settings
from motionswap.services.observability import logger


class NotificationError(Exception):
    """Raised when the email provider rejects a send"""

    pass


class CompletionNotifier:
    """Send the "video is ready" email"""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        public_base_url: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.sender = sender or settings.email_from
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        self.client = client or httpx.AsyncClient(
            base_url=settings.resend_base_url,
            timeout=httpx.Timeout(30.0),
        )

    def absolute_url(self, video_url: str) -> str:
        if video_url.startswith(("http://", "https://")):
            return video_url
        return f"{self.public_base_url}/{video_url.lstrip('/')}"

    def render_html(self, video_url: str, character_name: Optional[str] = None) -> str:
        link = escape(video_url, quote=True)
        character = f"<p>Character: {escape(character_name)}</p>" if character_name else ""
        return (
            "<h1>Your face swap video is ready!</h1>"
            f"{character}"
            "<p>Click below to view your video:</p>"
            f'<p><a href="{link}">View Video</a></p>'
            f"<p>Or copy this link: {link}</p>"
        )

    async def send_completion(
        self,
        email: str,
        video_url: str,
        character_name: Optional[str] = None,
    ) -> None:
        """
        Email the owner a link to the finished video

        Args:
            email: Recipient
            video_url: Stored result URL (relative URLs are made absolute)
            character_name: Optional character display name

        Raises:
            NotificationError: If the API key is missing or the send fails
        """
        if not self.api_key:
            raise NotificationError("RESEND_API_KEY is not configured")

        absolute = self.absolute_url(video_url)
        try:
            response = await self.client.post(
                "/emails",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.sender,
                    "to": [email],
                    "subject": "Your video is ready!",
                    "html": self.render_html(absolute, character_name),
                },
            )
        except httpx.HTTPError as e:
            raise NotificationError(f"Email request failed: {e}") from e

        if response.status_code >= 400:
            raise NotificationError(
                f"Email provider returned {response.status_code}: {response.text[:200]}"
            )

        logger.info("completion_email_sent", email=email)

    async def close(self):
        await self.client.aclose()
