"""
Object store collaborators.

The service only ever needs three things from blob storage: put bytes at a
pathname, delete an object by URL and check that a URL still resolves.
``HttpObjectStore`` talks to a hosted blob API over HTTP; ``MemoryObjectStore``
keeps objects in a dict for local development and tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
from urllib.parse import quote, urlparse

import requests

from relaycdn.errors import ObjectNotFound, StoreError

logger = logging.getLogger("relaycdn.storage")

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass
class ObjectInfo:
    content_type: str
    size: int


def to_store_url(url: str, store_base_url: str | None) -> str:
    """
    Map a public or proxied URL onto the store, keeping its object path.

    URLs already under ``store_base_url`` are returned unchanged. For the
    rest, a leading copy of the base URL's own path (``/bucket``) is dropped
    before joining so it is not doubled.
    """
    if not store_base_url:
        return url
    base = store_base_url.rstrip("/")
    if url == base or url.startswith(base + "/"):
        return url

    path = urlparse(url).path or "/"
    base_path = urlparse(base).path
    if base_path and path.startswith(base_path + "/"):
        path = path[len(base_path):]
    return f"{base}{path}"


class ObjectStore(ABC):
    base_url: str | None = None

    @abstractmethod
    def upload(self, pathname: str, content: bytes, content_type: str | None = None) -> str:
        """Store ``content`` at ``pathname`` and return its public URL."""

    @abstractmethod
    def delete(self, url: str) -> None:
        ...

    @abstractmethod
    def head(self, url: str) -> ObjectInfo:
        ...


class HttpObjectStore(ObjectStore):
    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.error("Object store %s %s failed: %s", method, url, exc)
            raise StoreError(f"Object store request failed: {exc}") from exc

        if response.status_code == 404:
            raise ObjectNotFound(f"Object not found: {url}")
        if not response.ok:
            logger.error(
                "Object store %s %s returned status=%s", method, url, response.status_code
            )
            raise StoreError(f"Object store returned {response.status_code}")
        return response

    def upload(self, pathname: str, content: bytes, content_type: str | None = None) -> str:
        target = f"{self.base_url}/{quote(pathname.lstrip('/'))}"
        response = self._request(
            "PUT",
            target,
            data=content,
            headers={"Content-Type": content_type or DEFAULT_CONTENT_TYPE},
        )
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        url = payload.get("url") if isinstance(payload, dict) else None
        return url or target

    def delete(self, url: str) -> None:
        self._request("DELETE", url)

    def head(self, url: str) -> ObjectInfo:
        response = self._request("HEAD", url, allow_redirects=True)
        length = response.headers.get("Content-Length", "0")
        return ObjectInfo(
            content_type=response.headers.get("Content-Type", DEFAULT_CONTENT_TYPE),
            size=int(length) if length.isdigit() else 0,
        )


class MemoryObjectStore(ObjectStore):
    """Dict-backed store. ``failing_urls`` make delete/head raise StoreError."""

    def __init__(self, base_url: str = "memory://relaycdn"):
        self.base_url = base_url.rstrip("/")
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.failing_urls: set[str] = set()

    def _check(self, url: str) -> None:
        if url in self.failing_urls:
            raise StoreError(f"Simulated store failure for {url}")

    def upload(self, pathname: str, content: bytes, content_type: str | None = None) -> str:
        url = f"{self.base_url}/{quote(pathname.lstrip('/'))}"
        self._check(url)
        self.objects[url] = (content, content_type or DEFAULT_CONTENT_TYPE)
        return url

    def delete(self, url: str) -> None:
        self._check(url)
        if self.objects.pop(url, None) is None:
            raise ObjectNotFound(f"Object not found: {url}")

    def head(self, url: str) -> ObjectInfo:
        self._check(url)
        if url not in self.objects:
            raise ObjectNotFound(f"Object not found: {url}")
        content, content_type = self.objects[url]
        return ObjectInfo(content_type=content_type, size=len(content))
