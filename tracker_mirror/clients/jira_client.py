"""Jira API client for the tracker mirror.

Provides a clean, exception-based interface to the Jira REST v2 resources the
synchronization reads: issue search, worklogs and changelogs.
"""

from typing import Any

from jira import JIRA
from requests import Response

from tracker_mirror import config
from tracker_mirror.clients.exceptions import (
    ApiError,
    AuthenticationError,
    CaptchaError,
    ClientConnectionError,
    ClientError,
    ResourceNotFoundError,
)
from tracker_mirror.clients.jira_fields import ISSUE_SEARCH_FIELDS
from tracker_mirror.display import configure_logging
from tracker_mirror.models.sync_error import ProviderContractError
from tracker_mirror.type_definitions import ChangelogRecord, JiraData, WorkLogRecord

HTTP_BAD_REQUEST_MIN = 400
CAPTCHA_HEADER = "X-Authentication-Denied-Reason"

try:
    from tracker_mirror.config import logger
except Exception:  # noqa: BLE001
    logger = configure_logging("INFO", None)


class JiraError(ClientError):
    """Base exception for all Jira client errors."""


class JiraConnectionError(JiraError, ClientConnectionError):
    """Error when connection to Jira server fails."""


class JiraAuthenticationError(JiraError, AuthenticationError):
    """Error when authentication to Jira fails."""


class JiraApiError(JiraError, ApiError):
    """Error when Jira API returns an error response."""


class JiraResourceNotFoundError(JiraError, ResourceNotFoundError):
    """Error when a requested Jira resource is not found."""


class JiraCaptchaError(JiraError, CaptchaError):
    """Error when Jira requires CAPTCHA resolution."""


class JiraClient:
    """Jira client implementing the tracker data provider contract.

    Instead of returning empty lists or None on failure, methods raise
    appropriate exceptions that can be caught and handled by the caller.
    Responses that lack their top-level keys raise ``ProviderContractError``.
    """

    def __init__(self) -> None:
        """Initialize the Jira client from configuration and connect."""
        self.jira_url: str = config.jira_config.get("url", "")
        self.jira_username: str = config.jira_config.get("username", "")
        self.jira_token: str = str(config.jira_config.get("api_token", "") or "")
        self.verify_ssl: bool = config.jira_config.get("verify_ssl", True)

        if not self.jira_url:
            msg = "Jira URL is required"
            raise ValueError(msg)
        if not self.jira_token:
            msg = "Jira API token is required"
            raise ValueError(msg)

        self.issues_jql: str = config.jira_config.get("issues_jql", "")
        self.current_sprint_jql: str = config.jira_config.get("current_sprint_jql", "")
        self.page_size: int = int(config.jira_config.get("page_size", 100))

        self.jira: JIRA | None = None
        self.request_count = 0
        self.base_url = self.jira_url.rstrip("/")

        self._connect()
        self._patch_jira_client()

    def _connect(self) -> None:
        """Connect with token authentication, falling back to basic auth.

        Raises:
            JiraAuthenticationError: If both authentication methods fail

        """
        options = {"verify": self.verify_ssl}
        failures: list[str] = []

        try:
            logger.info("Connecting to Jira at %s with token authentication", self.jira_url)
            self.jira = JIRA(server=self.jira_url, token_auth=self.jira_token, options=options)
            server_info = self.jira.server_info()
        except Exception as e:  # noqa: BLE001
            failures.append(f"Token authentication failed: {e!s}")
            logger.warning(failures[-1])
        else:
            logger.success("Connected to Jira %s (%s)", server_info.get("baseUrl"), server_info.get("version"))
            return

        try:
            self.jira = JIRA(
                server=self.jira_url,
                basic_auth=(self.jira_username, self.jira_token),
                options=options,
            )
        except Exception as e:  # noqa: BLE001
            failures.append(f"Basic authentication failed: {e!s}")
            logger.warning(failures[-1])
        else:
            logger.debug("Connected to Jira with basic authentication")
            return

        self.jira = None
        msg = f"Failed to authenticate with Jira at {self.jira_url}: {'; '.join(failures)}"
        raise JiraAuthenticationError(msg)

    def _captcha_login_url(self, response: Response) -> str | None:
        """Return the login page to visit if Jira answered with a CAPTCHA challenge."""
        reason = response.headers.get(CAPTCHA_HEADER, "")
        if "CAPTCHA_CHALLENGE" not in reason:
            return None
        _, marker, login_url = reason.partition("; login-url=")
        return login_url.strip() if marker else f"{self.base_url}/login.jsp"

    @staticmethod
    def _error_message(response: Response) -> str:
        message = f"HTTP Error {response.status_code}: {response.reason}"
        try:
            body = response.json()
        except ValueError:
            return message
        if isinstance(body, dict) and body.get("errorMessages"):
            return f"{message} - {', '.join(body['errorMessages'])}"
        if isinstance(body, dict) and body.get("errors"):
            return f"{message} - {body['errors']}"
        return message

    def _handle_response(self, response: Response) -> None:
        """Raise the matching client error for CAPTCHA challenges and HTTP errors.

        Raises:
            JiraCaptchaError: If Jira demands a browser login first
            JiraResourceNotFoundError: On HTTP 404
            JiraAuthenticationError: On HTTP 401/403
            JiraApiError: On any other HTTP error status

        """
        login_url = self._captcha_login_url(response)
        if login_url is not None:
            logger.error("CAPTCHA challenge detected from Jira!")
            msg = (
                f"CAPTCHA challenge detected. Log in once at {login_url} in a web browser, "
                "then run the synchronization again"
            )
            raise JiraCaptchaError(msg)

        if response.status_code < HTTP_BAD_REQUEST_MIN:
            return

        message = self._error_message(response)
        match response.status_code:
            case 404:
                raise JiraResourceNotFoundError(message)
            case 401 | 403:
                raise JiraAuthenticationError(message)
            case _:
                raise JiraApiError(message)

    def _patch_jira_client(self) -> None:
        """Route every request of the JIRA session through ``_handle_response``.

        Transport failures are re-raised as ``JiraConnectionError``.
        """
        if not self.jira:
            msg = "Cannot patch JIRA client: No active connection"
            raise JiraConnectionError(msg)

        send = self.jira._session.request  # noqa: SLF001

        def checked_request(method: str, url: str, **kwargs: object) -> Response:
            self.request_count += 1
            logger.debug("Jira request #%s: %s %s", self.request_count, method, url)
            try:
                response = send(method, url, **kwargs)
            except Exception as e:
                msg = f"Error during API request to {url}: {e!s}"
                raise JiraConnectionError(msg) from e
            self._handle_response(response)
            return response

        self.jira._session.request = checked_request  # noqa: SLF001

    def _make_request(self, path: str, method: str = "GET", **kwargs: object) -> Response:
        """Make an API request relative to the Jira base URL.

        Raises:
            JiraConnectionError: If client is not initialized

        """
        if not self.jira:
            msg = "Jira client is not initialized"
            raise JiraConnectionError(msg)

        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json"}
        return self.jira._session.request(method, url, headers=headers, **kwargs)  # noqa: SLF001

    def _get_json(self, path: str, params: dict[str, Any] | None = None) -> JiraData:
        response = self._make_request(path, params=params or {})
        try:
            payload = response.json()
        except ValueError as e:
            msg = f"Jira returned a non-JSON response for {path}"
            raise ProviderContractError(msg) from e
        if not isinstance(payload, dict):
            msg = f"Jira returned an unexpected payload for {path}: {type(payload).__name__}"
            raise ProviderContractError(msg)
        return payload

    def _search(self, jql: str, start_at: int, fields: str) -> JiraData:
        payload = self._get_json(
            "/rest/api/2/search",
            {
                "jql": jql,
                "startAt": start_at,
                "maxResults": self.page_size,
                "fields": fields,
            },
        )
        issues = payload.get("issues")
        total = payload.get("total")
        if not isinstance(issues, list) or not isinstance(total, int):
            msg = f"Search response at startAt={start_at} lacks 'issues' or 'total'"
            raise ProviderContractError(msg)
        return {"issues": issues, "total": total}

    def fetch_issues_page(self, offset: int) -> JiraData:
        """Fetch one page of the synchronized issues.

        Args:
            offset: Index of the first issue of the page

        Returns:
            ``{"issues": [...], "total": int}``

        """
        logger.debug("Fetching issues: startAt=%s, maxResults=%s", offset, self.page_size)
        return self._search(self.issues_jql, offset, ",".join(ISSUE_SEARCH_FIELDS))

    def fetch_current_sprint_issue_keys(self) -> list[str]:
        """Fetch the keys of every issue in an open sprint."""
        keys: list[str] = []
        total = 0
        while True:
            page = self._search(self.current_sprint_jql, len(keys), "summary")
            total = page["total"]
            if not page["issues"]:
                break
            keys.extend(issue["key"] for issue in page["issues"])
            if len(keys) >= total:
                break

        logger.debug("Current sprint contains %s issues", len(keys))
        return keys

    def fetch_work_logs(self, issue_key: str) -> list[WorkLogRecord]:
        """Fetch every worklog entry of an issue.

        The changelog does not carry ``started`` (the date the time was
        spent on), so worklogs are read from their own endpoint.
        """
        work_logs: list[WorkLogRecord] = []
        while True:
            payload = self._get_json(
                f"/rest/api/2/issue/{issue_key}/worklog",
                {"startAt": len(work_logs)},
            )
            page = payload.get("worklogs")
            if not isinstance(page, list):
                msg = f"Worklog response for {issue_key} lacks 'worklogs'"
                raise ProviderContractError(msg)
            work_logs.extend(page)
            total = payload.get("total", len(work_logs))
            if not page or len(work_logs) >= total:
                break

        logger.debug("Retrieved %s work logs for issue %s", len(work_logs), issue_key)
        return work_logs

    def fetch_changelog(self, issue_key: str) -> ChangelogRecord:
        """Fetch the changelog of an issue as ``{"histories": [...]}``."""
        payload = self._get_json(
            f"/rest/api/2/issue/{issue_key}",
            {"fields": "aggregatetimespent", "expand": "changelog"},
        )
        changelog = payload.get("changelog")
        if not isinstance(changelog, dict) or not isinstance(changelog.get("histories"), list):
            msg = f"Issue response for {issue_key} lacks 'changelog.histories'"
            raise ProviderContractError(msg)
        return {"histories": changelog["histories"]}
