"""Dropbox HTTP API client for listing, quarantining and restoring photos."""

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import httpx

from picsift.domain.errors import ListingError, RemoteOperationError
from picsift.domain.photos import PhotoEntry, TrashRecord
from picsift.services.triage import PhotoListingClient, QuarantineClient

DROPBOX_API_URL = "https://api.dropboxapi.com/2"
DROPBOX_TOKEN_URL = "https://api.dropbox.com/oauth2/token"
DEFAULT_QUARANTINE_ROOT = "/_TRASHME"

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".heic", ".webp", ".gif"}

_TOKEN_TTL = timedelta(minutes=55)
_RETRYABLE_STATUSES = {429, 500, 502, 503, 504}
_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")

logger = logging.getLogger(__name__)


def is_image_file(name: str) -> bool:
    """Return True if the file name has a supported image extension."""
    dot = name.rfind(".")
    if dot < 0:
        return False
    return name[dot:].lower() in IMAGE_EXTENSIONS


def validate_path(path: str) -> bool:
    """Reject traversal and relative paths."""
    return bool(path) and ".." not in path and path.startswith("/")


def validate_session_id(session_id: str) -> bool:
    """Allow only short ids made of letters, digits, hyphen and underscore."""
    return bool(_SESSION_ID_PATTERN.match(session_id))


@dataclass
class _AccessToken:
    value: str
    expires_at: datetime


@dataclass
class HttpxDropboxClient(PhotoListingClient, QuarantineClient):
    """Dropbox client implemented with httpx and a refresh-token grant."""

    app_key: str
    app_secret: str
    refresh_token: str
    http_client: httpx.AsyncClient
    api_url: str = DROPBOX_API_URL
    token_url: str = DROPBOX_TOKEN_URL
    quarantine_root: str = DEFAULT_QUARANTINE_ROOT
    _token: _AccessToken | None = field(default=None, init=False, repr=False)

    @classmethod
    def create(  # noqa: PLR0913
        cls,
        app_key: str,
        app_secret: str,
        refresh_token: str,
        api_url: str = DROPBOX_API_URL,
        token_url: str = DROPBOX_TOKEN_URL,
        quarantine_root: str = DEFAULT_QUARANTINE_ROOT,
    ) -> "HttpxDropboxClient":
        """Create a Dropbox client with a managed httpx session."""
        return cls(
            app_key=app_key,
            app_secret=app_secret,
            refresh_token=refresh_token,
            http_client=httpx.AsyncClient(),
            api_url=api_url,
            token_url=token_url,
            quarantine_root=quarantine_root,
        )

    async def list_photos(self, folder_path: str) -> list[PhotoEntry]:
        """List image files directly inside a folder, following pagination."""
        if folder_path and not validate_path(folder_path):
            raise ListingError(f"Invalid path: {folder_path}", status=400)
        entries: list[PhotoEntry] = []
        try:
            page = await self._rpc(
                "files/list_folder", {"path": folder_path, "recursive": False}
            )
            while True:
                entries.extend(_image_entries(page.get("entries", [])))
                if not page.get("has_more"):
                    break
                page = await self._rpc(
                    "files/list_folder/continue", {"cursor": page["cursor"]}
                )
        except RemoteOperationError as exc:
            raise ListingError(
                f"Failed to list folder: {exc.message}", exc.status
            ) from exc
        except (KeyError, ValueError) as exc:
            raise ListingError(f"Unexpected listing response: {exc}") from exc
        logger.debug("Listed %d images in %s", len(entries), folder_path)
        return entries

    async def quarantine(self, path: str, session_id: str) -> TrashRecord:
        """Move a file to ``<quarantine_root>/<session_id><path>``."""
        if not validate_path(path):
            raise RemoteOperationError("Invalid or missing path", status=400)
        if not validate_session_id(session_id):
            raise RemoteOperationError("Invalid or missing session_id", status=400)
        trashed_path = f"{self.quarantine_root}/{session_id}{path}"
        result = await self._rpc(
            "files/move_v2",
            {"from_path": path, "to_path": trashed_path, "autorename": True},
        )
        # autorename may have picked a different destination
        metadata = result.get("metadata")
        if isinstance(metadata, dict) and metadata.get("path_display"):
            trashed_path = str(metadata["path_display"])
        return TrashRecord(
            original_path=path,
            trashed_path=trashed_path,
            session_id=session_id,
            timestamp=datetime.now(tz=UTC).isoformat(),
        )

    async def restore(self, trashed_path: str, original_path: str) -> None:
        """Move a quarantined file back to its original location."""
        if not validate_path(trashed_path):
            raise RemoteOperationError("Invalid or missing trashed_path", status=400)
        if not validate_path(original_path):
            raise RemoteOperationError("Invalid or missing original_path", status=400)
        if not trashed_path.startswith(f"{self.quarantine_root}/"):
            raise RemoteOperationError(
                f"trashed_path must be under {self.quarantine_root}/", status=400
            )
        await self._rpc(
            "files/move_v2", {"from_path": trashed_path, "to_path": original_path}
        )

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _rpc(self, endpoint: str, payload: dict[str, object]) -> dict:
        """Call a Dropbox RPC endpoint, retrying once on transient failures."""
        last_error = RemoteOperationError("Request failed")
        for _ in range(2):
            try:
                response = await self._post(endpoint, payload)
                if response.status_code == httpx.codes.UNAUTHORIZED:
                    self._token = None
                    response = await self._post(endpoint, payload)
            except httpx.TransportError as exc:
                last_error = RemoteOperationError(f"Network error: {exc}")
                continue
            if response.status_code in _RETRYABLE_STATUSES:
                last_error = RemoteOperationError(
                    f"Request failed ({response.status_code}). Please try again.",
                    status=response.status_code,
                )
                continue
            if response.is_error:
                raise RemoteOperationError(
                    _error_summary(response), status=response.status_code
                )
            try:
                return response.json()
            except ValueError as exc:
                raise RemoteOperationError(
                    f"Unexpected response from {endpoint}",
                    status=response.status_code,
                ) from exc
        raise last_error

    async def _post(self, endpoint: str, payload: dict[str, object]) -> httpx.Response:
        token = await self._access_token()
        return await self.http_client.post(
            f"{self.api_url}/{endpoint}",
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
            timeout=30,
        )

    async def _access_token(self) -> str:
        now = datetime.now(tz=UTC)
        if self._token is not None and self._token.expires_at > now:
            return self._token.value
        response = await self.http_client.post(
            self.token_url,
            data={
                "grant_type": "refresh_token",
                "refresh_token": self.refresh_token,
                "client_id": self.app_key,
                "client_secret": self.app_secret,
            },
            timeout=15,
        )
        if response.is_error:
            raise RemoteOperationError(
                f"Token refresh failed: {response.status_code}",
                status=httpx.codes.UNAUTHORIZED,
            )
        try:
            value = str(response.json()["access_token"])
        except (ValueError, KeyError, TypeError) as exc:
            raise RemoteOperationError(
                "Token refresh returned no access token",
                status=response.status_code,
            ) from exc
        self._token = _AccessToken(value=value, expires_at=now + _TOKEN_TTL)
        return self._token.value


def _image_entries(raw_entries: list[dict]) -> list[PhotoEntry]:
    entries = []
    for raw in raw_entries:
        if raw.get(".tag") != "file" or not is_image_file(raw.get("name", "")):
            continue
        entries.append(
            PhotoEntry(
                name=raw["name"],
                path_lower=raw.get("path_lower", ""),
                path_display=raw.get("path_display", ""),
                id=raw.get("id", ""),
                rev=raw.get("rev", ""),
                size=raw.get("size", 0),
                client_modified=raw.get("client_modified"),
                server_modified=raw.get("server_modified"),
                content_hash=raw.get("content_hash"),
                is_downloadable=raw.get("is_downloadable", True),
            )
        )
    return entries


def _error_summary(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"Request failed ({response.status_code})"
    if isinstance(body, dict):
        summary = body.get("error_summary") or body.get("message")
        if summary:
            return str(summary)
    return f"Request failed ({response.status_code})"
