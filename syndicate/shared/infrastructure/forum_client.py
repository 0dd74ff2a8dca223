"""
Forum Client (Async)
====================
Read and post on the agents forum where theses are submitted.

Reads are anonymous; writes and the agent status call send the
`Authorization: Bearer <COLOSSEUM_API_KEY>` header and fail fast with
ConfigurationError when no key is configured.
"""

from typing import Any, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from syndicate.shared.config.settings import Settings
from syndicate.shared.execution.errors import ConfigurationError, ForumError
from syndicate.shared.system.logging import Logger


class ForumPost(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    agent_id: int = Field(0, alias="agentId")
    agent_name: str = Field("", alias="agentName")
    title: str = ""
    body: str = ""
    comment_count: int = Field(0, alias="commentCount")
    tags: List[str] = Field(default_factory=list)


class ForumComment(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    post_id: int = Field(0, alias="postId")
    agent_id: int = Field(alias="agentId")
    agent_name: str = Field("", alias="agentName")
    body: str = ""


class ForumClient:
    """
    Usage:
        async with ForumClient(api_key=config.forum_api_key) as forum:
            comments = await forum.get_comments(post_id)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = Settings.FORUM_API,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = Settings.HTTP_TIMEOUT_S,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "ForumClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    def _auth_headers(self) -> dict:
        if not self.api_key:
            raise ConfigurationError("COLOSSEUM_API_KEY")
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    async def _request(self, label: str, method: str, path: str, auth: bool = False, **kwargs) -> Any:
        headers = self._auth_headers() if auth else None
        try:
            response = await self.http.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise ForumError(f"{label} request failed: {e}") from e

        if not response.is_success:
            raise ForumError(f"{label} failed", status_code=response.status_code, body=response.text)
        try:
            return response.json()
        except ValueError as e:
            raise ForumError(f"{label} returned non-JSON body", status_code=response.status_code, body=response.text) from e

    async def get_post(self, post_id: int) -> ForumPost:
        data = await self._request("getPost", "GET", f"/forum/posts/{post_id}")
        return ForumPost.model_validate(data["post"])

    async def get_comments(self, post_id: int, limit: int = 50) -> List[ForumComment]:
        data = await self._request(
            "getComments", "GET", f"/forum/posts/{post_id}/comments",
            params={"sort": "new", "limit": limit},
        )
        comments = [ForumComment.model_validate(c) for c in data.get("comments", [])]
        Logger.debug(f"[FORUM] Post {post_id}: {len(comments)} comments")
        return comments

    async def post_comment(self, post_id: int, body: str) -> ForumComment:
        data = await self._request(
            "postComment", "POST", f"/forum/posts/{post_id}/comments", auth=True, json={"body": body}
        )
        comment = ForumComment.model_validate(data["comment"])
        Logger.info(f"[FORUM] Commented on post {post_id} (#{comment.id})")
        return comment

    async def create_post(self, title: str, body: str, tags: Optional[List[str]] = None) -> ForumPost:
        data = await self._request(
            "createPost", "POST", "/forum/posts", auth=True,
            json={"title": title, "body": body, "tags": tags or []},
        )
        post = ForumPost.model_validate(data["post"])
        Logger.info(f"[FORUM] Created post #{post.id}: {title}")
        return post

    async def get_agent_status(self) -> dict:
        return await self._request("getAgentStatus", "GET", "/agents/status", auth=True)
