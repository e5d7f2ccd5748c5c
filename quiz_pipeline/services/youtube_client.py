"""
YouTube Data API v3 over httpx.

One client per account. The account's refresh token is exchanged for an
access token on first use.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional

import httpx

from quiz_pipeline.core.config import settings
from quiz_pipeline.core.redis import Cache
from quiz_pipeline.core.security import decrypt_secret
from quiz_pipeline.core.timezone import IST
from quiz_pipeline.models.account import Account

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
API_BASE = "https://www.googleapis.com/youtube/v3"
UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"
PAGE_SIZE = 50


class PublishError(RuntimeError):
    pass


@dataclass(frozen=True)
class PublishedItem:
    video_id: Optional[str]
    title: str
    description: Optional[str]
    published_at: Optional[datetime]


def parse_published_at(value: Optional[str]) -> Optional[datetime]:
    """RFC 3339 timestamp from the API -> naive IST datetime"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(IST).replace(tzinfo=None)


class YouTubeClient:
    def __init__(self, account: Account, http: Optional[httpx.Client] = None, store=None):
        if not account.refresh_token_encrypted:
            raise PublishError(f"Account {account.id} has no YouTube credentials")
        self.account = account
        self.store = store
        self._http = http or httpx.Client(timeout=settings.UPLOAD_TIMEOUT_SECONDS)
        self._access_token: Optional[str] = None

    def _token(self) -> str:
        if self._access_token:
            return self._access_token
        response = self._http.post(
            TOKEN_URL,
            data={
                "client_id": settings.GOOGLE_CLIENT_ID,
                "client_secret": settings.GOOGLE_CLIENT_SECRET,
                "refresh_token": decrypt_secret(self.account.refresh_token_encrypted),
                "grant_type": "refresh_token",
            },
        )
        if response.status_code != 200:
            raise PublishError(f"Token refresh failed for {self.account.id}: {response.status_code} {response.text[:200]}")
        self._access_token = response.json()["access_token"]
        return self._access_token

    def _get(self, path: str, params: dict) -> dict:
        response = self._http.get(
            f"{API_BASE}/{path}",
            params=params,
            headers={"Authorization": f"Bearer {self._token()}"},
        )
        if response.status_code != 200:
            raise PublishError(f"YouTube {path} failed: {response.status_code} {response.text[:200]}")
        return response.json()

    def uploads_playlist_id(self) -> str:
        if self.account.uploads_playlist_id:
            return self.account.uploads_playlist_id

        cached = Cache.get_uploads_playlist(self.account.id)
        if cached:
            return cached

        data = self._get("channels", {"part": "contentDetails", "mine": "true"})
        items = data.get("items") or []
        if not items:
            raise PublishError(f"No channel found for account {self.account.id}")
        playlist_id = items[0]["contentDetails"]["relatedPlaylists"]["uploads"]
        Cache.set_uploads_playlist(self.account.id, playlist_id)
        if self.store is not None:
            self.store.save_uploads_playlist(self.account.id, items[0].get("id"), playlist_id)
        return playlist_id

    def list_published(self) -> Iterator[PublishedItem]:
        """Every video in the channel's uploads playlist, page by page"""
        playlist_id = self.uploads_playlist_id()
        page_token = None
        while True:
            params = {"part": "snippet,contentDetails", "playlistId": playlist_id, "maxResults": PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token
            data = self._get("playlistItems", params)

            for item in data.get("items", []):
                snippet = item.get("snippet", {})
                details = item.get("contentDetails", {})
                yield PublishedItem(
                    video_id=details.get("videoId") or snippet.get("resourceId", {}).get("videoId"),
                    title=snippet.get("title", ""),
                    description=snippet.get("description"),
                    published_at=parse_published_at(details.get("videoPublishedAt") or snippet.get("publishedAt")),
                )

            page_token = data.get("nextPageToken")
            if not page_token:
                break

    def upload_video(self, video: bytes, title: str, description: str, tags: list[str]) -> str:
        """Resumable upload in one chunk. Returns the new video id."""
        metadata = {
            "snippet": {
                "title": title[:100],
                "description": description[:5000],
                "tags": tags,
                "categoryId": settings.YOUTUBE_CATEGORY_ID,
            },
            "status": {
                "privacyStatus": settings.YOUTUBE_PRIVACY_STATUS,
                "selfDeclaredMadeForKids": False,
            },
        }
        headers = {"Authorization": f"Bearer {self._token()}"}

        session = self._http.post(
            UPLOAD_URL,
            params={"uploadType": "resumable", "part": "snippet,status"},
            headers={
                **headers,
                "Content-Type": "application/json; charset=UTF-8",
                "X-Upload-Content-Type": "video/mp4",
                "X-Upload-Content-Length": str(len(video)),
            },
            content=json.dumps(metadata),
        )
        if session.status_code != 200 or "location" not in session.headers:
            raise PublishError(f"Upload session failed: {session.status_code} {session.text[:200]}")

        response = self._http.put(
            session.headers["location"],
            headers={**headers, "Content-Type": "video/mp4"},
            content=video,
        )
        if response.status_code not in (200, 201):
            raise PublishError(f"Upload failed: {response.status_code} {response.text[:200]}")

        video_id = response.json().get("id")
        if not video_id:
            raise PublishError("Upload response had no video id")
        logger.info("Uploaded video %s to account %s", video_id, self.account.id)
        return video_id
