import logging
from typing import Any, Dict, Optional

import requests

from .models import Dataset

logger = logging.getLogger(__name__)


class ClientError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message


class DataClient:
    """Talks to the link manager API; the session's cookie jar carries the login."""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, payload: Any = None) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"timeout": self.timeout}
        if payload is not None:
            kwargs["json"] = payload
        resp = self.session.request(method, f"{self.base_url}{path}", **kwargs)
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code >= 400:
            message = body.get("error") if isinstance(body, dict) else None
            raise ClientError(resp.status_code, message or f"HTTP {resp.status_code}")
        return body

    def auth_status(self) -> bool:
        return bool(self._request("GET", "/api/auth-status").get("authenticated"))

    def login(self, password: str):
        self._request("POST", "/api/login", {"password": password})

    def logout(self):
        self._request("POST", "/api/logout")

    def change_password(self, old_password: str, new_password: str):
        self._request(
            "POST",
            "/api/change-password",
            {"oldPassword": old_password, "newPassword": new_password},
        )

    def fetch(self) -> Dict[str, Any]:
        """Raw dataset document as the server returns it."""
        return self._request("GET", "/api/data")

    def push(self, dataset: Dataset):
        self._request("POST", "/api/data", dataset.to_wire())
        logger.debug("pushed %d links", len(dataset.links))
