"""Argo CD REST client for ``Application`` resources.

Argo CD's API server fronts a gRPC service; REST errors carry the gRPC
status in the JSON body::

    {"error": "...", "code": 5, "message": "applications.argoproj.io \\"foo\\" not found"}

Only code 5 (NotFound) means "does not exist yet".  Every other code, or
a response without a code, is surfaced as a distinct error so callers
can retry.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from arlon_ctl.api.models import Application

logger = logging.getLogger(__name__)

#: gRPC status code for NotFound.
GRPC_NOT_FOUND = 5

_APPS_PATH = "/api/v1/applications"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ArgocdError(Exception):
    """Base class for Argo CD adapter failures."""


class ArgocdStatusMissingError(ArgocdError):
    """The response carried no structured status (transport failure, non-JSON body)."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        msg = "failed to get grpc status from argocd API"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class ArgocdStatusError(ArgocdError):
    """The API answered with a gRPC status other than NotFound."""

    def __init__(self, code: int, message: str = "") -> None:
        self.code = code
        self.message = message
        super().__init__(f"unexpected grpc status: {code}" + (f" ({message})" if message else ""))


class ApplicationNotFoundError(ArgocdStatusError):
    """The named application does not exist."""

    def __init__(self, name: str, message: str = "") -> None:
        self.name = name
        super().__init__(GRPC_NOT_FOUND, message or f"application {name} not found")


def _raise_for_status(resp: httpx.Response, name: str = "") -> None:
    if resp.is_success:
        return
    try:
        body = resp.json()
    except ValueError:
        body = None
    code = body.get("code") if isinstance(body, dict) else None
    if not isinstance(code, int):
        raise ArgocdStatusMissingError(f"HTTP {resp.status_code}")
    message = str(body.get("message") or body.get("error") or "")
    if code == GRPC_NOT_FOUND:
        raise ApplicationNotFoundError(name, message)
    raise ArgocdStatusError(code, message)


def _json(resp: httpx.Response) -> Dict[str, Any]:
    try:
        body = resp.json()
    except ValueError as exc:
        raise ArgocdStatusMissingError(
            f"HTTP {resp.status_code}: response is not JSON"
        ) from exc
    if not isinstance(body, dict):
        raise ArgocdStatusMissingError(f"HTTP {resp.status_code}: unexpected response body")
    return body


# ---------------------------------------------------------------------------
# ApplicationClient: one session
# ---------------------------------------------------------------------------


class ApplicationClient:
    """A session against the Argo CD application service.

    Use as a context manager so the connection pool is always closed::

        with argocd.new_application_client() as apps:
            apps.get("foo-arlon")
    """

    def __init__(self, http: httpx.Client, namespace: str = "argocd") -> None:
        self._http = http
        self.namespace = namespace

    def __enter__(self) -> "ApplicationClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def _request(self, method: str, url: str, name: str = "", **kwargs: Any) -> httpx.Response:
        try:
            resp = self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ArgocdStatusMissingError(str(exc)) from exc
        _raise_for_status(resp, name)
        return resp

    def get(self, name: str) -> Dict[str, Any]:
        """Return the application manifest or raise :class:`ApplicationNotFoundError`."""
        resp = self._request("GET", f"{_APPS_PATH}/{name}", name=name)
        return _json(resp)

    def create(self, app: Application, *, upsert: bool = False) -> Dict[str, Any]:
        params = {"upsert": "true" if upsert else "false", "validate": "true"}
        resp = self._request(
            "POST", _APPS_PATH, name=app.name, params=params, json=app.to_argocd(),
        )
        logger.info("Created argocd application %s", app.name)
        return _json(resp)

    def delete(self, name: str, *, cascade: bool = True) -> None:
        self._request(
            "DELETE",
            f"{_APPS_PATH}/{name}",
            name=name,
            params={"cascade": "true" if cascade else "false"},
        )
        logger.info("Deleted argocd application %s", name)


def find_application(apps: ApplicationClient, name: str) -> Optional[Dict[str, Any]]:
    """Return the application, ``None`` when NotFound; other errors propagate."""
    try:
        return apps.get(name)
    except ApplicationNotFoundError:
        return None


# ---------------------------------------------------------------------------
# ArgocdClient: session factory
# ---------------------------------------------------------------------------


class ArgocdClient:
    """Connection settings for the Argo CD API server."""

    def __init__(
        self,
        server: str,
        token: str = "",
        *,
        namespace: str = "argocd",
        insecure: bool = False,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.server = server.rstrip("/")
        self.token = token
        self.namespace = namespace
        self.insecure = insecure
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, cfg: Any) -> "ArgocdClient":
        return cls(
            cfg.argocd_server,
            cfg.argocd_token,
            namespace=cfg.argocd_namespace,
            insecure=cfg.argocd_insecure,
            timeout=cfg.argocd_timeout_seconds,
        )

    def new_application_client(self) -> ApplicationClient:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        http = httpx.Client(
            base_url=self.server,
            headers=headers,
            timeout=self.timeout,
            verify=not self.insecure,
            transport=self._transport,
        )
        return ApplicationClient(http, namespace=self.namespace)
