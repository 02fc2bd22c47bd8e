"""Thin async client for Google OAuth and the Classroom REST API."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlencode

import httpx

from app.core.config import Settings
from app.core.exceptions import TokenRefreshError, UpstreamError

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
API_BASE = "https://classroom.googleapis.com/v1"

DEFAULT_SCOPES = (
    "https://www.googleapis.com/auth/classroom.courses.readonly",
    "https://www.googleapis.com/auth/classroom.coursework.me.readonly",
    "https://www.googleapis.com/auth/classroom.announcements.readonly",
    "https://www.googleapis.com/auth/classroom.rosters.readonly",
)

COURSES_PAGE_SIZE = 50
COURSEWORK_PAGE_SIZE = 50


@dataclass
class TokenSet:
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None  # seconds


def parse_due_date(due_date: Optional[Dict[str, int]], due_time: Optional[Dict[str, int]] = None) -> Optional[datetime]:
    """Classroom splits due dates into date and time parts. Date-only work is due at 23:59:59 UTC."""
    if not due_date:
        return None
    try:
        if due_time is None:
            return datetime(due_date["year"], due_date["month"], due_date["day"], 23, 59, 59)
        return datetime(
            due_date["year"],
            due_date["month"],
            due_date["day"],
            due_time.get("hours", 0),
            due_time.get("minutes", 0),
        )
    except (KeyError, TypeError, ValueError):
        logger.warning("Ignoring malformed due date %r %r", due_date, due_time)
        return None


class GoogleClassroomClient:
    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        redirect_uri: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GoogleClassroomClient":
        return cls(
            settings.google_client_id,
            settings.google_client_secret,
            settings.google_redirect_uri,
            timeout=settings.http_timeout_seconds,
        )

    def authorization_url(self, state: str, scopes: Optional[Sequence[str]] = None) -> str:
        params = {
            "client_id": self.client_id or "",
            "redirect_uri": self.redirect_uri or "",
            "response_type": "code",
            "scope": " ".join(scopes or DEFAULT_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
            "state": state,
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    # ----- OAuth -----
    async def _token_request(self, data: Dict[str, str]) -> Dict[str, Any]:
        payload = {"client_id": self.client_id or "", "client_secret": self.client_secret or "", **data}
        try:
            response = await self._http.post(TOKEN_URL, data=payload)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Google token endpoint unreachable: {e}") from e
        body = _json(response)
        if response.status_code != 200 or "access_token" not in body:
            reason = body.get("error_description") or body.get("error") or f"HTTP {response.status_code}"
            raise UpstreamError(f"Google token request failed: {reason}")
        return body

    async def exchange_code(self, code: str) -> TokenSet:
        body = await self._token_request(
            {"code": code, "grant_type": "authorization_code", "redirect_uri": self.redirect_uri or ""}
        )
        return _token_set(body)

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        try:
            body = await self._token_request({"refresh_token": refresh_token, "grant_type": "refresh_token"})
        except UpstreamError as e:
            raise TokenRefreshError(f"Failed to refresh Google access token: {e.message}") from e
        return _token_set(body)

    # ----- Classroom API -----
    async def _paginate(self, path: str, access_token: str, key: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page_token = None
        while True:
            query = dict(params)
            if page_token:
                query["pageToken"] = page_token
            try:
                response = await self._http.get(
                    f"{API_BASE}{path}",
                    params=query,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
            except httpx.HTTPError as e:
                raise UpstreamError(f"Google Classroom request failed: {e}") from e
            if response.status_code != 200:
                body = _json(response)
                error = body.get("error")
                message = error.get("message") if isinstance(error, dict) else error
                raise UpstreamError(
                    f"Google Classroom {path} returned {response.status_code}: {message or response.text[:200]}"
                )
            body = _json(response)
            items.extend(body.get(key) or [])
            page_token = body.get("nextPageToken")
            if not page_token:
                return items

    async def list_courses(self, access_token: str) -> List[Dict[str, Any]]:
        return await self._paginate(
            "/courses",
            access_token,
            "courses",
            {"courseStates": "ACTIVE", "pageSize": COURSES_PAGE_SIZE},
        )

    async def list_coursework(self, access_token: str, course_id: str) -> List[Dict[str, Any]]:
        return await self._paginate(
            f"/courses/{course_id}/courseWork",
            access_token,
            "courseWork",
            {"pageSize": COURSEWORK_PAGE_SIZE, "orderBy": "dueDate desc"},
        )

    async def aclose(self) -> None:
        await self._http.aclose()


def _json(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _token_set(body: Dict[str, Any]) -> TokenSet:
    expires_in = body.get("expires_in")
    return TokenSet(
        access_token=body["access_token"],
        refresh_token=body.get("refresh_token"),
        expires_in=int(expires_in) if expires_in is not None else None,
    )
