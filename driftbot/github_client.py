"""GitHub API client helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import httpx
import jwt


class GitHubAPIError(RuntimeError):
    """Raised when a GitHub API request fails."""

    def __init__(self, message: str, status_code: int, response_body: Any | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


DEFAULT_ACCEPT_HEADER = "application/vnd.github+json"
DIFF_ACCEPT_HEADER = "application/vnd.github.v3.diff"
DEFAULT_API_VERSION = "2022-11-28"
FILES_PAGE_SIZE = 100


@dataclass
class InstallationToken:
    token: str
    expires_at: datetime

    def is_active(self, *, skew_seconds: int = 60) -> bool:
        """Return True if the token is still valid accounting for clock skew."""

        return self.expires_at - timedelta(seconds=skew_seconds) > datetime.now(timezone.utc)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class GitHubInstallationClient:
    """GitHub App helper for installation-scoped API operations."""

    def __init__(
        self,
        *,
        base_url: str,
        app_id: int,
        private_key_pem: str,
        timeout: float = 10.0,
        user_agent: str = "Rigour-Bot/1.0",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._app_id = app_id
        self._private_key = private_key_pem.replace("\\n", "\n")
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            headers={
                "User-Agent": user_agent,
                "Accept": DEFAULT_ACCEPT_HEADER,
                "X-GitHub-Api-Version": DEFAULT_API_VERSION,
            },
        )
        self._owns_client = client is None
        self._installation_tokens: Dict[int, InstallationToken] = {}

    def _build_jwt(self) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "iat": int((now - timedelta(seconds=60)).timestamp()),
            "exp": int((now + timedelta(minutes=10)).timestamp()),
            "iss": str(self._app_id),
        }
        try:
            return jwt.encode(payload, self._private_key, algorithm="RS256")
        except Exception as exc:
            raise GitHubAPIError(
                f"Failed to encode JWT: {exc}. Check that GITHUB_PRIVATE_KEY is a valid RSA private key in PEM format.",
                0,
                None,
            ) from exc

    def _app_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._build_jwt()}",
            "Accept": DEFAULT_ACCEPT_HEADER,
            "X-GitHub-Api-Version": DEFAULT_API_VERSION,
        }

    @staticmethod
    def _installation_headers(token: str, *, accept: str = DEFAULT_ACCEPT_HEADER) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": accept,
            "X-GitHub-Api-Version": DEFAULT_API_VERSION,
        }

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: Dict[str, str],
        params: Dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> httpx.Response:
        response = await self._client.request(method, url, headers=headers, params=params, json=json)
        if response.status_code >= 400:
            detail: Any | None
            if response.content:
                try:
                    detail = response.json()
                except ValueError:
                    detail = response.text
            else:
                detail = None
            raise GitHubAPIError(
                f"GitHub API request {method} {url} failed with status {response.status_code}.",
                response.status_code,
                detail,
            )
        return response

    async def _fetch_installation_token(self, installation_id: int) -> InstallationToken:
        response = await self._request(
            "POST",
            f"/app/installations/{installation_id}/access_tokens",
            headers=self._app_headers(),
        )
        data = response.json()
        token_value = data.get("token")
        if not token_value:
            raise GitHubAPIError(
                "GitHub did not return an installation token.",
                response.status_code,
                data,
            )

        expires_at_raw = data.get("expires_at")
        if not expires_at_raw:
            raise GitHubAPIError(
                "GitHub did not return an expires_at value for installation token.",
                response.status_code,
                data,
            )
        return InstallationToken(token=token_value, expires_at=_parse_github_timestamp(expires_at_raw))

    async def get_installation_token(self, installation_id: int) -> InstallationToken:
        cached = self._installation_tokens.get(installation_id)
        if cached and cached.is_active():
            return cached

        token = await self._fetch_installation_token(installation_id)
        self._installation_tokens[installation_id] = token
        return token

    @staticmethod
    def _split_full_name(full_name: str) -> tuple[str, str]:
        if "/" not in full_name:
            raise ValueError(f"Repository full name '{full_name}' is invalid.")
        owner, repo = full_name.split("/", 1)
        return owner, repo

    async def create_check_run(
        self,
        *,
        installation_id: int,
        full_name: str,
        head_sha: str,
        name: str,
        status: str = "in_progress",
    ) -> int:
        token = await self.get_installation_token(installation_id)
        owner, repo = self._split_full_name(full_name)
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/check-runs",
            headers=self._installation_headers(token.token),
            json={"name": name, "head_sha": head_sha, "status": status, "started_at": utc_timestamp()},
        )
        data = response.json()
        check_run_id = data.get("id") if isinstance(data, dict) else None
        if not check_run_id:
            raise GitHubAPIError("GitHub did not return a check run id.", response.status_code, data)
        return int(check_run_id)

    async def update_check_run(
        self,
        *,
        installation_id: int,
        full_name: str,
        check_run_id: int,
        output: Dict[str, Any],
        conclusion: str | None = None,
    ) -> Dict[str, Any]:
        """PATCH a check run; passing ``conclusion`` also marks it completed."""

        token = await self.get_installation_token(installation_id)
        owner, repo = self._split_full_name(full_name)
        payload: Dict[str, Any] = {"output": output}
        if conclusion is not None:
            payload.update(status="completed", conclusion=conclusion, completed_at=utc_timestamp())
        response = await self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/check-runs/{check_run_id}",
            headers=self._installation_headers(token.token),
            json=payload,
        )
        return response.json()

    async def get_pull_request_diff(
        self,
        *,
        installation_id: int,
        full_name: str,
        pull_number: int,
    ) -> str:
        token = await self.get_installation_token(installation_id)
        owner, repo = self._split_full_name(full_name)
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/pulls/{pull_number}",
            headers=self._installation_headers(token.token, accept=DIFF_ACCEPT_HEADER),
        )
        return response.text

    async def list_pull_request_files(
        self,
        *,
        installation_id: int,
        full_name: str,
        pull_number: int,
    ) -> List[Dict[str, Any]]:
        token = await self.get_installation_token(installation_id)
        owner, repo = self._split_full_name(full_name)

        files: List[Dict[str, Any]] = []
        page = 1
        while True:
            response = await self._request(
                "GET",
                f"/repos/{owner}/{repo}/pulls/{pull_number}/files",
                headers=self._installation_headers(token.token),
                params={"per_page": FILES_PAGE_SIZE, "page": page},
            )
            batch = response.json()
            if not isinstance(batch, list):
                raise GitHubAPIError(
                    "Unexpected response while listing pull request files.",
                    response.status_code,
                    batch,
                )
            files.extend(batch)
            if len(batch) < FILES_PAGE_SIZE:
                break
            page += 1
        return files

    async def create_pull_request_review(
        self,
        *,
        installation_id: int,
        full_name: str,
        pull_number: int,
        body: str,
        event: str = "COMMENT",
    ) -> Dict[str, Any]:
        token = await self.get_installation_token(installation_id)
        owner, repo = self._split_full_name(full_name)
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls/{pull_number}/reviews",
            headers=self._installation_headers(token.token),
            json={"body": body, "event": event},
        )
        return response.json()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


def _parse_github_timestamp(raw: str) -> datetime:
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    return datetime.fromisoformat(raw).astimezone(timezone.utc)
