"""Client for the upstream release order API.

The API issues a short-lived token together with a request nonce
(``reqtime``); both travel in the JSON body of every data request. Requests go
through a Playwright ``APIRequestContext`` so the process carries a single
HTTP stack.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from playwright.async_api import APIRequestContext, APIResponse

from ero_automation.common.json_logger import JsonLogger, log_event

__all__ = ["ApiAuthError", "ApiToken", "ReleaseOrderApiClient", "TOKEN_PATH", "PROCESS_PATH"]

TOKEN_PATH = "/api/data/util/gettokenNonAid"
PROCESS_PATH = "/api/data/process/{req_id}"
REQUEST_TIMEOUT_MS = 90_000
JSON_HEADERS = {"Content-Type": "application/json"}
AUTH_FAILURE_STATUSES = {401, 403}


class ApiAuthError(RuntimeError):
    """The API rejected the current token."""

    def __init__(self, status: int) -> None:
        super().__init__(f"API rejected token (HTTP {status})")
        self.status = status


@dataclass(frozen=True)
class ApiToken:
    token: str
    reqtime: Any


class ReleaseOrderApiClient:
    def __init__(
        self,
        request_context: APIRequestContext,
        logger: JsonLogger,
        *,
        req_id: str,
        app_version: str,
        timeout_ms: int = REQUEST_TIMEOUT_MS,
    ) -> None:
        self.request_context = request_context
        self.logger = logger
        self.req_id = req_id
        self.app_version = app_version
        self.timeout_ms = timeout_ms
        self.token: ApiToken | None = None

    async def get_token(self) -> bool:
        """Request a fresh token; return ``True`` when one was stored."""

        log_event(logger=self.logger, phase="api", message="Requesting API token")
        try:
            response = await self.request_context.get(
                TOKEN_PATH,
                headers=JSON_HEADERS,
                data={"reqid": self.req_id, "data": {"appversion": self.app_version}},
                timeout=self.timeout_ms,
            )
            if not response.ok:
                log_event(
                    logger=self.logger,
                    phase="api",
                    status="error",
                    message="Token request failed",
                    status_code=response.status,
                )
                return False
            payload = await response.json()
        except Exception as exc:
            log_event(
                logger=self.logger,
                phase="api",
                status="error",
                message="Failed to get token",
                error=str(exc),
            )
            return False

        if not isinstance(payload, Mapping) or not payload.get("token") or not payload.get("reqtime"):
            log_event(logger=self.logger, phase="api", status="error", message="Invalid token response")
            return False

        self.token = ApiToken(token=str(payload["token"]), reqtime=payload["reqtime"])
        log_event(logger=self.logger, phase="api", message="Token retrieved successfully")
        return True

    async def fetch_work_items(self) -> Any | None:
        """Return the release order payload, or ``None`` when it cannot be fetched.

        A rejected token is refreshed once and the request retried; transport
        failures are logged and never raised.
        """

        if self.token is None and not await self.get_token():
            return None
        try:
            return await self._request_work_items()
        except ApiAuthError as exc:
            log_event(
                logger=self.logger,
                phase="api",
                status="warn",
                message="Token expired, getting new token",
                status_code=exc.status,
            )
        except Exception as exc:
            self._log_fetch_failure(exc)
            return None

        self.token = None
        if not await self.get_token():
            return None
        try:
            return await self._request_work_items()
        except Exception as exc:
            self._log_fetch_failure(exc)
            return None

    async def _request_work_items(self) -> Any | None:
        assert self.token is not None
        log_event(logger=self.logger, phase="api", message="Requesting release order data")
        response = await self.request_context.get(
            PROCESS_PATH.format(req_id=self.req_id),
            headers=JSON_HEADERS,
            data={
                "token": self.token.token,
                "reqtime": self.token.reqtime,
                "data": {"appversion": self.app_version},
            },
            timeout=self.timeout_ms,
        )
        return await self._decode(response)

    async def _decode(self, response: APIResponse) -> Any | None:
        if response.status in AUTH_FAILURE_STATUSES:
            raise ApiAuthError(response.status)
        if not response.ok:
            log_event(
                logger=self.logger,
                phase="api",
                status="error",
                message="Release order request failed",
                status_code=response.status,
            )
            return None
        payload = await response.json()
        if not payload:
            log_event(logger=self.logger, phase="api", status="error", message="Invalid data response")
            return None
        log_event(logger=self.logger, phase="api", message="Release order data retrieved successfully")
        return payload

    def _log_fetch_failure(self, exc: Exception) -> None:
        log_event(
            logger=self.logger,
            phase="api",
            status="error",
            message="Failed to get release order data",
            error=str(exc),
        )
