"""Artifact fetchers: release tarballs over HTTP and container images.

Both skip the fetch when the artifact is already present, which makes a
rerun of the download phase free of network I/O.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

import requests

from ..core.components import get_spec
from ..core.enums import Component
from ..core.errors import NetworkError, SubstrateError, TransientNetworkError
from ..core.log import Logger, get_logger
from ..core.types import TimeoutConfig
from ..utils.filesystem import ensure_dir
from .podman import PodmanSubstrate

_CHUNK_SIZE = 1024 * 256


class ArtifactFetcher(Protocol):
    """Protocol for fetching one component's artifact."""

    def artifact_location(self, component: Component) -> str:
        """Where the artifact lives once fetched (path or image reference)."""

    def is_present(self, component: Component) -> bool:
        """True if the artifact is already available locally."""

    def fetch(self, component: Component) -> bool:
        """Make the artifact available locally. Returns True on success."""


class HttpArtifactFetcher:
    """Downloads release archives for native installs."""

    def __init__(
        self,
        download_dir: Path,
        os_name: str,
        arch: str,
        timeouts: Optional[TimeoutConfig] = None,
        session: Optional[requests.Session] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._download_dir = Path(download_dir)
        self._os = os_name
        self._arch = arch
        self._timeouts = timeouts or TimeoutConfig()
        self._session = session or requests.Session()
        self._logger = logger or get_logger(__name__)

    def url_for(self, component: Component) -> str:
        return get_spec(component).download_url(self._os, self._arch)

    def artifact_path(self, component: Component) -> Path:
        return self._download_dir / get_spec(component).archive_name(self._os, self._arch)

    def artifact_location(self, component: Component) -> str:
        return str(self.artifact_path(component))

    def is_present(self, component: Component) -> bool:
        return self.artifact_path(component).is_file()

    def fetch(self, component: Component) -> bool:
        target = self.artifact_path(component)
        if self.is_present(component):
            self._logger.info("%s already downloaded: %s", component.value, target.name)
            return True

        url = self.url_for(component)
        ensure_dir(self._download_dir)
        self._logger.info("Downloading %s from %s", component.value, url)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=self._download_dir)
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                self._download(url, handle)
            tmp_path.replace(target)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
        self._logger.info("Downloaded %s (%d bytes)", target.name, target.stat().st_size)
        return True

    def _download(self, url: str, handle) -> None:
        timeout = (self._timeouts.http_connect, self._timeouts.http_read)
        try:
            with self._session.get(url, stream=True, timeout=timeout, allow_redirects=True) as response:
                if response.status_code >= 500:
                    raise TransientNetworkError(f"HTTP {response.status_code} from {url}")
                if response.status_code != 200:
                    raise NetworkError(
                        f"HTTP {response.status_code} from {url}",
                        details={"status_code": response.status_code},
                    )
                for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                    if chunk:
                        handle.write(chunk)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientNetworkError(f"Download of {url} failed: {e}") from e
        except requests.RequestException as e:
            raise NetworkError(f"Download of {url} failed: {e}") from e


class ImageArtifactFetcher:
    """Pulls container images for container installs."""

    def __init__(self, podman: PodmanSubstrate, logger: Optional[Logger] = None) -> None:
        self._podman = podman
        self._logger = logger or get_logger(__name__)

    def artifact_location(self, component: Component) -> str:
        return get_spec(component).image

    def is_present(self, component: Component) -> bool:
        try:
            return self._podman.image_exists(get_spec(component).image)
        except SubstrateError as e:
            raise TransientNetworkError(str(e)) from e

    def fetch(self, component: Component) -> bool:
        image = get_spec(component).image
        if self.is_present(component):
            self._logger.info("Image %s already present", image)
            return True
        self._logger.info("Pulling %s", image)
        try:
            return self._podman.pull_image(image)
        except SubstrateError as e:
            raise TransientNetworkError(str(e)) from e
