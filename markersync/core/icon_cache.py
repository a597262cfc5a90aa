"""Icon Cache/Provisioner — lazy, fetch-once icon assets per identity.

The first time an identity needs a marker, its icon image is downloaded
from a templated URL, registered with the rendering service, and the
resulting handle is memoized for the life of the process.  There is no
TTL and no refresh: a registered icon is never re-fetched.

Failures never leave this module.  A timeout, a transport error, a
non-200 response, or a registration error all resolve to the rendering
service's shared default icon.  Default handles are not cached, so a
failed identity is retried the next time a marker is created for it.
A marker that was created with the default icon keeps it; the real icon
only appears once the identity leaves and its marker is created again.

Concurrency
-----------
Calls for the same identity are serialized by a per-identity lock, so
two threads asking for a new identity at once register its icon exactly
once.  Calls for different identities proceed in parallel.  A lock entry
lives only while some call for its identity is in progress.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any
from urllib.parse import quote

import requests

from markersync.core.marker_adapter import MarkerSetAdapter
from markersync.models.markers import IconHandle

logger = logging.getLogger(__name__)

_ESCAPED_ID_CHARS = re.compile(r"[^A-Za-z0-9.-]")


class IconProvisioningError(RuntimeError):
    """Base class for icon fetch/registration failures (internal only)."""


class IconFetchError(IconProvisioningError):
    """The remote asset could not be downloaded (transport error or non-200)."""


class IconFetchTimeout(IconProvisioningError):
    """The remote asset did not arrive within the timeout."""


class IconRegisterError(IconProvisioningError):
    """The rendering service rejected the downloaded asset."""


def icon_id_for(identity: str) -> str:
    """Icon asset id registered for an identity.

    Letters, digits, ``.`` and ``-`` are kept; every other character,
    ``_`` included, becomes ``_`` plus the hex of its UTF-8 bytes.  Distinct
    identities therefore never share an icon id.
    """
    return "icon_" + _ESCAPED_ID_CHARS.sub(
        lambda m: "".join(f"_{b:02x}" for b in m.group().encode("utf-8")),
        identity,
    )


class _IdentityLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class IconProvisioner:
    """Resolves identities to icon handles, fetching each at most once.

    Parameters
    ----------
    adapter:
        Marker adapter used to register icons and obtain the default icon.
    url_template:
        Remote image URL with ``{identity}`` and/or ``{name}`` placeholders.
    timeout_seconds:
        Connect and read timeout for the download.
    session:
        ``requests.Session`` (or compatible object with ``get``).  A new
        session is created when omitted.
    user_agent:
        ``User-Agent`` header sent with every download.
    """

    def __init__(
        self,
        adapter: MarkerSetAdapter,
        *,
        url_template: str,
        timeout_seconds: float = 5.0,
        session: Any | None = None,
        user_agent: str = "markersync icon fetcher",
    ) -> None:
        self._adapter = adapter
        self._url_template = url_template
        self._timeout = (timeout_seconds, timeout_seconds)
        self._session = session if session is not None else requests.Session()
        self._headers = {"User-Agent": user_agent}

        self._cache: dict[str, IconHandle] = {}
        self._cache_lock = threading.Lock()
        self._identity_locks: dict[str, _IdentityLock] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_icon(self, identity: str, display_name: str = "") -> IconHandle:
        """Return the icon handle for *identity*, provisioning it on first use.

        Never raises for fetch or registration problems; those resolve to
        the default icon.
        """
        cached = self._cached(identity)
        if cached is not None:
            return cached

        with self._identity_lock(identity):
            # Another thread may have finished while we waited.
            cached = self._cached(identity)
            if cached is not None:
                return cached
            try:
                handle = self._provision(identity, display_name)
            except IconProvisioningError as exc:
                logger.warning(
                    "Icon for %s unavailable, using default icon: %s", identity, exc
                )
                return self._adapter.default_icon()
            with self._cache_lock:
                self._cache[identity] = handle
            return handle

    def get_icons(
        self, wanted: Mapping[str, str], *, max_workers: int = 4
    ) -> dict[str, IconHandle]:
        """Resolve several icons at once on a bounded thread pool.

        Parameters
        ----------
        wanted:
            Mapping of identity -> display name.
        max_workers:
            Upper bound on concurrent downloads.

        Returns
        -------
        dict[str, IconHandle]
            A handle for every requested identity.
        """
        if not wanted:
            return {}
        missing = [i for i in wanted if self._cached(i) is None]
        if len(missing) <= 1 or max_workers <= 1:
            return {i: self.get_icon(i, wanted[i]) for i in wanted}

        with ThreadPoolExecutor(
            max_workers=min(max_workers, len(missing)),
            thread_name_prefix="markersync-icons",
        ) as pool:
            handles = dict(
                zip(missing, pool.map(lambda i: self.get_icon(i, wanted[i]), missing))
            )
        # Identities not in ``handles`` were cached before the pool ran.
        return {i: handles.get(i) or self.get_icon(i, wanted[i]) for i in wanted}

    @property
    def cached_identities(self) -> list[str]:
        with self._cache_lock:
            return sorted(self._cache)

    def clear(self) -> None:
        """Forget every cached handle (registered assets stay registered)."""
        with self._cache_lock:
            self._cache.clear()

    def close(self) -> None:
        close = getattr(self._session, "close", None)
        if callable(close):
            close()

    def url_for(self, identity: str, display_name: str = "") -> str:
        """Build the download URL for an identity."""
        name = display_name or identity
        return self._url_template.format(
            identity=quote(identity, safe=""),
            name=quote(name, safe=""),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cached(self, identity: str) -> IconHandle | None:
        with self._cache_lock:
            return self._cache.get(identity)

    @contextmanager
    def _identity_lock(self, identity: str) -> Iterator[None]:
        with self._cache_lock:
            entry = self._identity_locks.get(identity)
            if entry is None:
                entry = self._identity_locks[identity] = _IdentityLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._cache_lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._identity_locks[identity]

    def _provision(self, identity: str, display_name: str) -> IconHandle:
        url = self.url_for(identity, display_name)
        data = self._download(url)
        label = display_name or identity
        try:
            handle = self._adapter.register_icon(icon_id_for(identity), label, data)
        except Exception as exc:
            raise IconRegisterError(f"registration of {url} failed: {exc}") from exc
        logger.info("Registered icon %s for %s.", handle.icon_id, identity)
        return handle

    def _download(self, url: str) -> bytes:
        logger.debug("Downloading icon from %s", url)
        try:
            response = self._session.get(
                url, headers=self._headers, timeout=self._timeout
            )
        except requests.Timeout as exc:
            raise IconFetchTimeout(f"{url} timed out") from exc
        except requests.RequestException as exc:
            raise IconFetchError(f"{url} failed: {exc}") from exc

        try:
            if response.status_code != 200:
                raise IconFetchError(f"{url} returned HTTP {response.status_code}")
            data = response.content
        finally:
            response.close()
        if not data:
            raise IconFetchError(f"{url} returned an empty body")
        return data
