"""
infrastructure.bluesky.client - XRPC client for the bot account.

Implements BlueskyPort with requests, run in the default executor so the
event loop is never blocked:
    - com.atproto.server.createSession  → login()
    - app.bsky.feed.searchPosts         → search_posts()
    - com.atproto.repo.createRecord     → create_post()
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import requests

from domain.exceptions import BlueskyAuthError, BlueskyError
from domain.models import POST_COLLECTION, PostRef, SearchPost

logger = logging.getLogger(__name__)

SEARCH_PAGE_SIZE = 100


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_search_post(data: dict[str, Any]) -> SearchPost:
    author = data.get("author") or {}
    record = data.get("record") or {}
    reply = record.get("reply") or {}
    return SearchPost(
        uri=data.get("uri") or "",
        cid=data.get("cid") or "",
        author_did=author.get("did") or "",
        author_handle=author.get("handle") or "",
        text=record.get("text") or "",
        created_at=record.get("createdAt") or "",
        root=PostRef.from_dict(reply.get("root")),
    )


class BlueskyClient:
    """Bot account session plus the three XRPC calls it needs."""

    def __init__(
        self,
        handle: str,
        app_password: str,
        service_url: str = "https://bsky.social",
        did: str = "",
        timeout: float = 15.0,
    ):
        self._handle = handle
        self._password = app_password
        self._base = service_url.rstrip("/") + "/xrpc/"
        self._timeout = timeout
        self._session = requests.Session()
        self.access_jwt: Optional[str] = None
        self.did = did

    # ------------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------------

    async def login(self) -> str:
        """Create a session and return the access JWT."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._login)

    async def search_posts(self, term: str, hours: int) -> list[SearchPost]:
        """All posts matching `term` from the last `hours` hours, newest first."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._search_posts, term, hours)

    async def create_post(
        self,
        text: str,
        reply_root: Optional[PostRef] = None,
        reply_parent: Optional[PostRef] = None,
    ) -> PostRef:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._create_post, text, reply_root, reply_parent,
        )

    # ------------------------------------------------------------------
    # Blocking calls (run in the thread pool)
    # ------------------------------------------------------------------

    def _login(self) -> str:
        if not self._handle or not self._password:
            raise BlueskyAuthError("BLUESKY_HANDLE and BLUESKY_APP_PASSWORD are required")
        try:
            data = self._request(
                "POST",
                "com.atproto.server.createSession",
                json={"identifier": self._handle, "password": self._password},
                auth=False,
            )
        except BlueskyError as e:
            raise BlueskyAuthError(f"Login as {self._handle} failed: {e}") from e
        self.access_jwt = data.get("accessJwt")
        if not self.access_jwt:
            raise BlueskyAuthError("createSession returned no accessJwt")
        self.did = data.get("did") or self.did
        logger.info("Logged in to Bluesky as %s (%s)", data.get("handle", self._handle), self.did)
        return self.access_jwt

    def _search_posts(self, term: str, hours: int) -> list[SearchPost]:
        since = utc_timestamp(datetime.now(timezone.utc) - timedelta(hours=hours))
        logger.info("Searching posts for %r since %s", term, since)

        posts: list[SearchPost] = []
        cursor: Optional[str] = None
        while True:
            params: dict[str, Any] = {
                "q": term,
                "sort": "latest",
                "limit": SEARCH_PAGE_SIZE,
                "since": since,
            }
            if cursor:
                params["cursor"] = cursor
            body = self._request("GET", "app.bsky.feed.searchPosts", params=params)
            page = body.get("posts") or []
            if not page:
                break
            posts.extend(parse_search_post(p) for p in page)
            logger.debug("Retrieved %d posts (total %d)", len(page), len(posts))
            cursor = body.get("cursor")
            if not cursor:
                break

        logger.info("Found %d posts for %r", len(posts), term)
        return posts

    def _create_post(
        self,
        text: str,
        reply_root: Optional[PostRef],
        reply_parent: Optional[PostRef],
    ) -> PostRef:
        if not self.did:
            raise BlueskyError("Bot DID unknown; call login() first")
        record: dict[str, Any] = {
            "$type": POST_COLLECTION,
            "text": text,
            "createdAt": utc_timestamp(),
        }
        if reply_parent is not None:
            root = reply_root or reply_parent
            record["reply"] = {
                "root": {"uri": root.uri, "cid": root.cid},
                "parent": {"uri": reply_parent.uri, "cid": reply_parent.cid},
            }
        data = self._request(
            "POST",
            "com.atproto.repo.createRecord",
            json={"repo": self.did, "collection": POST_COLLECTION, "record": record},
        )
        ref = PostRef(uri=data.get("uri") or "", cid=data.get("cid") or "")
        logger.info("Post created%s: %s", " (as reply)" if reply_parent else "", ref.uri)
        return ref

    def _request(
        self,
        method: str,
        nsid: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        auth: bool = True,
    ) -> dict[str, Any]:
        headers = {}
        if auth:
            if not self.access_jwt:
                raise BlueskyError(f"{nsid} requires a session; call login() first")
            headers["Authorization"] = f"Bearer {self.access_jwt}"
        try:
            response = self._session.request(
                method,
                self._base + nsid,
                params=params,
                json=json,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as e:
            raise BlueskyError(f"{nsid} request failed: {e}") from e

        if not response.ok:
            raise BlueskyError(
                f"{nsid} returned HTTP {response.status_code}: {response.text[:200]}"
            )
        return response.json() if response.content else {}
