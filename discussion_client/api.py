"""
Async HTTP client for the discussions API.

Every mutating call returns the server's complete discussion so the caller
can replace its state instead of patching it. Failures are raised as the
discussion error taxonomy (ValidationError, Forbidden, NotFound, Conflict,
AuthenticationError, NetworkError).
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from core.discussions.errors import DiscussionError, NetworkError, error_for_status
from models.discussion_model import DiscussionOut, DiscussionSummary, MessagePermissionsOut

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class DiscussionAPI:
    """Client for the /api/discussions endpoints."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Server root, e.g. "http://localhost:8000"
            token: Bearer token carrying userId and role
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (ASGI app, mock) for tests
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/api/discussions",
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "DiscussionAPI":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---------- endpoints ----------

    async def get_discussion(self, item_type: str, item_id: str) -> DiscussionOut:
        data = await self._request("GET", f"/{item_type}/{item_id}")
        return DiscussionOut.model_validate(data)

    async def post_message(
        self,
        item_type: str,
        item_id: str,
        content: str,
        parent_message_id: Optional[str] = None,
    ) -> DiscussionOut:
        data = await self._request(
            "POST",
            f"/{item_type}/{item_id}/message",
            json={"content": content, "parentMessageId": parent_message_id},
        )
        return DiscussionOut.model_validate(data)

    async def edit_message(self, discussion_id: str, message_id: str, content: str) -> DiscussionOut:
        data = await self._request("PUT", f"/{discussion_id}/message/{message_id}", json={"content": content})
        return DiscussionOut.model_validate(data)

    async def delete_message(self, discussion_id: str, message_id: str, cascade: bool = False) -> DiscussionOut:
        data = await self._request(
            "DELETE",
            f"/{discussion_id}/message/{message_id}",
            params={"cascade": "true" if cascade else "false"},
        )
        return DiscussionOut.model_validate(data)

    async def toggle_like(self, discussion_id: str, message_id: str) -> DiscussionOut:
        data = await self._request("POST", f"/{discussion_id}/message/{message_id}/like")
        return DiscussionOut.model_validate(data)

    async def get_permissions(self, discussion_id: str, message_id: str) -> MessagePermissionsOut:
        data = await self._request("GET", f"/{discussion_id}/message/{message_id}/permissions")
        return MessagePermissionsOut.model_validate(data)

    async def list_my_discussions(self, limit: int = 10) -> List[DiscussionSummary]:
        data = await self._request("GET", "/user/me", params={"limit": limit})
        return [DiscussionSummary.model_validate(d) for d in data]

    # ---------- plumbing ----------

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out: {e}")
            raise NetworkError("The server took too long to respond") from e
        except httpx.RequestError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise NetworkError("Could not reach the server") from e

        if response.is_success:
            return response.json()
        raise self._error_from(response)

    @staticmethod
    def _error_from(response: httpx.Response) -> DiscussionError:
        detail = response.reason_phrase or ""
        code = None
        try:
            body: Dict[str, Any] = response.json()
        except ValueError:
            body = {}
        if isinstance(body, dict):
            raw = body.get("detail")
            if isinstance(raw, str):
                detail = raw
            elif isinstance(raw, list) and raw:
                # FastAPI request validation errors
                detail = "; ".join(str(item.get("msg", item)) if isinstance(item, dict) else str(item) for item in raw)
            code = body.get("code")
        logger.info(f"API error {response.status_code}: {detail}")
        return error_for_status(response.status_code, detail, code)
