"""HTTP client for the image analysis webhook.

Sends the photo and the user's subject id as multipart form data with the
ID token as bearer. Single attempt: no retry, bounded only by ``CHAT_TIMEOUT``.
"""

import os

import httpx
import structlog

from poolsnap.core.images import SelectedImage

logger = structlog.get_logger(__name__)

DEFAULT_WEBHOOK_BASE_URL = "https://egesumerclash.app.n8n.cloud/webhook"

# Phrase the webhook uses when it refuses to analyze a photo.
DECLINE_MARKER = "AI is unable to analyze"


class AnalysisError(Exception):
    """Webhook answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AnalysisTimeoutError(AnalysisError):
    """Webhook did not answer within the configured timeout."""
    pass


class AnalysisConnectionError(AnalysisError):
    """Webhook could not be reached."""
    pass


class EmptyReplyError(AnalysisError):
    """Webhook returned success but no content."""
    pass


class AnalysisClient:
    """Async wrapper around the ``/chat`` webhook."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        http: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or os.environ.get("WEBHOOK_BASE_URL", DEFAULT_WEBHOOK_BASE_URL)).rstrip("/")
        self.timeout = timeout if timeout is not None else float(os.environ.get("CHAT_TIMEOUT", "60"))
        self._http = http

    @property
    def chat_url(self) -> str:
        return f"{self.base_url}/chat"

    async def analyze(self, image: SelectedImage, sub: str, token: str) -> str:
        """Upload a photo and return the raw reply body.

        Args:
            image: Photo selected by the user.
            sub: Subject identifier of the signed-in user.
            token: ID token, sent as bearer.

        Returns:
            Response text exactly as received.

        Raises:
            AnalysisError: On a non-2xx status.
            AnalysisTimeoutError: If the webhook does not answer in time.
            AnalysisConnectionError: On any other transport failure.
        """
        logger.info("analysis.request", url=self.chat_url, size=len(image.content), has_token=bool(token))

        try:
            if self._http is not None:
                resp = await self._post(self._http, image, sub, token)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as http:
                    resp = await self._post(http, image, sub, token)
        except httpx.TimeoutException as e:
            logger.warning("analysis.timeout", threshold=self.timeout)
            raise AnalysisTimeoutError(f"chat timed out after {self.timeout:g}s") from e
        except httpx.RequestError as e:
            logger.error("analysis.transport_failed", error=str(e))
            raise AnalysisConnectionError(f"chat unreachable: {e}") from e

        if not resp.is_success:
            body = resp.text.strip()
            logger.error("analysis.http_error", status=resp.status_code, body_len=len(body))
            if DECLINE_MARKER in body:
                raise AnalysisError(body, status_code=resp.status_code)
            raise AnalysisError(f"chat failed: {resp.status_code}", status_code=resp.status_code)

        logger.info("analysis.response", status=resp.status_code, body_len=len(resp.text))
        return resp.text

    async def _post(self, http: httpx.AsyncClient, image: SelectedImage, sub: str, token: str) -> httpx.Response:
        return await http.post(
            self.chat_url,
            headers={"Authorization": f"Bearer {token}"},
            data={"sub": sub},
            files={"image": (image.filename, image.content, image.content_type)},
            timeout=self.timeout,
        )
