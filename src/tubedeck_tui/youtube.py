"""YouTube listing client: the data source behind every list screen."""
from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Sequence
from urllib.parse import urlencode

from .errors import NetworkError, ProviderError, SpawnError
from .http_utils import HttpResponse, Transport, error_details, request_json
from .logging_utils import get_logger

log = get_logger(__name__)

API_BASE_URL = "https://www.googleapis.com/youtube/v3"
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
CHANNEL_URL_LIMIT = 20
MAX_IDS_PER_REQUEST = 50


class ListKind(str, Enum):
    SUBSCRIPTIONS = "subscriptions"
    PLAYLISTS = "playlists"
    PLAYLIST_ITEMS = "playlist-items"
    SEARCH = "search"
    HISTORY = "history"
    CHANNEL_VIDEOS = "channel-videos"
    TRENDING = "trending"
    CHANNEL_URL = "channel-url"


PLAYABLE_KINDS = frozenset(
    {
        ListKind.PLAYLIST_ITEMS,
        ListKind.SEARCH,
        ListKind.HISTORY,
        ListKind.CHANNEL_VIDEOS,
        ListKind.TRENDING,
        ListKind.CHANNEL_URL,
    }
)


@dataclass(frozen=True, slots=True)
class ListItem:
    """One row of a list screen."""

    id: str
    title: str
    kind: str = "video"
    channel_title: Optional[str] = None
    published_at: Optional[str] = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def watch_url(self) -> str:
        return WATCH_URL.format(video_id=self.id)


def watch_url(video_id: str) -> str:
    return WATCH_URL.format(video_id=video_id)


def normalize_channel_url(value: str) -> str:
    """Turn ``@handle`` or a bare path into a full channel videos URL."""

    text = value.strip()
    if text.startswith("http://") or text.startswith("https://"):
        return text
    if text.startswith("@"):
        return f"https://www.youtube.com/{text}/videos"
    return f"https://www.youtube.com/{text.lstrip('/')}"


def _format_upload_date(raw: str) -> Optional[str]:
    raw = raw.strip()
    if len(raw) >= 8 and raw[:8].isdigit():
        return f"{raw[0:4]}-{raw[4:6]}-{raw[6:8]}"
    return raw or None


def parse_flat_playlist(output: str) -> list[ListItem]:
    """Parse ``id|title|uploader|upload_date`` lines printed by yt-dlp."""

    items: list[ListItem] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split("|")
        if len(parts) < 4:
            continue
        video_id, uploader, upload_date = parts[0], parts[-2], parts[-1]
        title = "|".join(parts[1:-2])
        items.append(
            ListItem(
                id=video_id.strip(),
                title=title.strip() or video_id.strip(),
                channel_title=uploader.strip() or None,
                published_at=_format_upload_date(upload_date),
            )
        )
    return items


def _snippet(entry: Mapping[str, Any]) -> Mapping[str, Any]:
    snippet = entry.get("snippet")
    return snippet if isinstance(snippet, dict) else {}


def _resource_id(entry: Mapping[str, Any], key: str) -> Optional[str]:
    resource = _snippet(entry).get("resourceId")
    if isinstance(resource, dict):
        value = resource.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _video_item(video_id: str, entry: Mapping[str, Any]) -> ListItem:
    snippet = _snippet(entry)
    return ListItem(
        id=video_id,
        title=str(snippet.get("title") or video_id),
        channel_title=snippet.get("videoOwnerChannelTitle") or snippet.get("channelTitle"),
        published_at=str(snippet.get("publishedAt") or "")[:10] or None,
    )


def _entries(payload: Any) -> list[Mapping[str, Any]]:
    if not isinstance(payload, dict):
        return []
    items = payload.get("items")
    if not isinstance(items, list):
        return []
    return [entry for entry in items if isinstance(entry, dict)]


class YouTubeClient:
    """Fetch list contents from the YouTube Data API and yt-dlp."""

    def __init__(
        self,
        *,
        max_results: int = 25,
        region_code: Optional[str] = None,
        resolver: str = "yt-dlp",
        transport: Transport = request_json,
        base_url: str = API_BASE_URL,
    ) -> None:
        self.max_results = max(1, min(max_results, 50))
        self.region_code = region_code
        self.resolver = resolver
        self._transport = transport
        self._base_url = base_url.rstrip("/")

    async def _get(self, resource: str, params: Mapping[str, str], token: str) -> Any:
        url = f"{self._base_url}/{resource}?{urlencode(params)}"
        response: HttpResponse = await self._transport(
            url, headers={"Authorization": f"Bearer {token}"}
        )
        if not response.ok:
            code, description = error_details(response)
            log.warning("YouTube API %s failed with HTTP %s: %s", resource, response.status, description)
            raise ProviderError(
                f"YouTube API error ({response.status}): {description}",
                code=code,
                status=response.status,
            )
        return response.payload

    async def fetch_list(self, kind: ListKind, argument: Any, token: str) -> list[ListItem]:
        """Return the items for a list screen of *kind*."""

        log.info("Fetching %s list", kind.value)
        if kind is ListKind.SUBSCRIPTIONS:
            return await self.subscriptions(token)
        if kind is ListKind.PLAYLISTS:
            return await self.playlists(token)
        if kind is ListKind.PLAYLIST_ITEMS:
            return await self.playlist_items(str(argument), token)
        if kind is ListKind.SEARCH:
            return await self.search(str(argument), token)
        if kind is ListKind.HISTORY:
            return await self.videos_by_id(list(argument or ()), token)
        if kind is ListKind.CHANNEL_VIDEOS:
            return await self.channel_videos(str(argument), token)
        if kind is ListKind.TRENDING:
            return await self.trending(token)
        if kind is ListKind.CHANNEL_URL:
            return await self.channel_url_videos(str(argument))
        raise ValueError(f"Unsupported list kind: {kind}")

    async def subscriptions(self, token: str) -> list[ListItem]:
        payload = await self._get(
            "subscriptions",
            {"part": "snippet", "mine": "true", "maxResults": "50", "order": "alphabetical"},
            token,
        )
        items: list[ListItem] = []
        for entry in _entries(payload):
            channel_id = _resource_id(entry, "channelId")
            if channel_id is None:
                continue
            snippet = _snippet(entry)
            items.append(
                ListItem(
                    id=channel_id,
                    title=str(snippet.get("title") or channel_id),
                    kind="channel",
                )
            )
        return items

    async def playlists(self, token: str) -> list[ListItem]:
        payload = await self._get(
            "playlists",
            {"part": "snippet,contentDetails", "mine": "true", "maxResults": "50"},
            token,
        )
        items: list[ListItem] = []
        for entry in _entries(payload):
            playlist_id = entry.get("id")
            if not isinstance(playlist_id, str):
                continue
            details = entry.get("contentDetails")
            count = details.get("itemCount") if isinstance(details, dict) else None
            items.append(
                ListItem(
                    id=playlist_id,
                    title=str(_snippet(entry).get("title") or playlist_id),
                    kind="playlist",
                    extra={"item_count": count} if count is not None else {},
                )
            )
        return items

    async def playlist_items(self, playlist_id: str, token: str) -> list[ListItem]:
        payload = await self._get(
            "playlistItems",
            {"part": "snippet", "playlistId": playlist_id, "maxResults": str(self.max_results)},
            token,
        )
        items: list[ListItem] = []
        for entry in _entries(payload):
            video_id = _resource_id(entry, "videoId")
            if video_id is not None:
                items.append(_video_item(video_id, entry))
        return items

    async def search(self, query: str, token: str) -> list[ListItem]:
        payload = await self._get(
            "search",
            {"part": "snippet", "type": "video", "q": query, "maxResults": str(self.max_results)},
            token,
        )
        items: list[ListItem] = []
        for entry in _entries(payload):
            identifier = entry.get("id")
            video_id = identifier.get("videoId") if isinstance(identifier, dict) else None
            if isinstance(video_id, str) and video_id:
                items.append(_video_item(video_id, entry))
        return items

    async def trending(self, token: str) -> list[ListItem]:
        params = {"part": "snippet", "chart": "mostPopular", "maxResults": str(self.max_results)}
        if self.region_code:
            params["regionCode"] = self.region_code
        payload = await self._get("videos", params, token)
        return [
            _video_item(entry["id"], entry)
            for entry in _entries(payload)
            if isinstance(entry.get("id"), str)
        ]

    async def videos_by_id(self, video_ids: Sequence[str], token: str) -> list[ListItem]:
        """Look up titles for *video_ids*, keeping their order."""

        found: dict[str, ListItem] = {}
        for start in range(0, len(video_ids), MAX_IDS_PER_REQUEST):
            chunk = video_ids[start : start + MAX_IDS_PER_REQUEST]
            payload = await self._get(
                "videos", {"part": "snippet", "id": ",".join(chunk), "maxResults": "50"}, token
            )
            for entry in _entries(payload):
                video_id = entry.get("id")
                if isinstance(video_id, str):
                    found[video_id] = _video_item(video_id, entry)
        return [found.get(video_id) or ListItem(id=video_id, title=video_id) for video_id in video_ids]

    async def channel_videos(self, channel_id: str, token: str) -> list[ListItem]:
        payload = await self._get(
            "channels", {"part": "contentDetails", "id": channel_id}, token
        )
        uploads: Optional[str] = None
        for entry in _entries(payload):
            details = entry.get("contentDetails")
            related = details.get("relatedPlaylists") if isinstance(details, dict) else None
            if isinstance(related, dict) and isinstance(related.get("uploads"), str):
                uploads = related["uploads"]
                break
        if uploads is None:
            raise ProviderError(f"Channel {channel_id} has no uploads playlist")
        return await self.playlist_items(uploads, token)

    async def channel_url_videos(self, channel_url: str) -> list[ListItem]:
        """List the newest videos of a channel URL through yt-dlp."""

        resolver = shutil.which(self.resolver)
        if resolver is None:
            raise SpawnError(f"{self.resolver} not found; install it to browse channel URLs")
        url = normalize_channel_url(channel_url)
        log.info("Listing channel videos from %s with %s", url, resolver)
        try:
            process = await asyncio.create_subprocess_exec(
                resolver,
                "--flat-playlist",
                "--print",
                "%(id)s|%(title)s|%(uploader)s|%(upload_date)s",
                "--playlist-end",
                str(CHANNEL_URL_LIMIT),
                url,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SpawnError(f"Failed to run {self.resolver}: {exc}") from exc
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            detail = stderr.decode("utf8", errors="replace").strip().splitlines()
            message = detail[-1] if detail else f"exit status {process.returncode}"
            raise NetworkError(f"Could not list videos for {url}: {message}")
        return parse_flat_playlist(stdout.decode("utf8", errors="replace"))[:CHANNEL_URL_LIMIT]


__all__ = [
    "ListItem",
    "ListKind",
    "PLAYABLE_KINDS",
    "YouTubeClient",
    "normalize_channel_url",
    "parse_flat_playlist",
    "watch_url",
]
