"""
Fetcher Stage
=============

Fetchers turn an import source (a path or URL) into a local file the
parser stage can seek in. HTTP sources are downloaded once per import and
the local copy is reused by every following tick.
"""

import hashlib
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import requests
from pydantic import BaseModel, Field
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config.settings import FeedPipeSettings
from ..plugins.configurable import Configurable
from ..utils.exceptions import ErrorCode, SourceUnavailableError, ValidationError
from ..utils.validators import URLValidator, validate_file_path


@dataclass
class FetchResult:
    """Local byte source produced by a fetcher."""

    path: Path
    source: str
    size: int
    content_type: Optional[str] = None
    downloaded: bool = False


class Fetcher(Configurable):
    """Base class for fetcher plugins."""

    stage = "fetcher"

    def fetch(self, source: str, settings: FeedPipeSettings) -> FetchResult:
        """Make ``source`` available as a local file.

        Raises:
            SourceUnavailableError: If the source cannot be obtained
        """
        raise NotImplementedError

    def release(self, result_path: Optional[str]) -> None:
        """Dispose of a local copy once its import is over."""


class FileFetcherConfig(BaseModel):
    """Local file fetcher options."""
    base_dir: str = Field(default="", description="Directory relative sources are resolved against")
    allowed_extensions: List[str] = Field(default_factory=list, description="Accepted file suffixes (empty = any)")


class FileFetcher(Fetcher):
    """Reads sources straight from the local filesystem."""

    plugin_key = "file"
    config_model = FileFetcherConfig

    def fetch(self, source: str, settings: FeedPipeSettings) -> FetchResult:
        config = self.get_config()
        candidate = Path(source).expanduser()
        if config["base_dir"] and not candidate.is_absolute():
            candidate = Path(config["base_dir"]).expanduser() / candidate

        try:
            path = validate_file_path(str(candidate), must_exist=True)
        except ValidationError as e:
            raise SourceUnavailableError(
                e.message, source=source, error_code=ErrorCode.SOURCE_NOT_FOUND
            ) from e

        if config["base_dir"]:
            base = Path(config["base_dir"]).expanduser().resolve()
            if base not in path.parents:
                raise SourceUnavailableError(
                    f"{path} is outside {base}", source=source, recoverable=False
                )

        allowed = [ext.lower() for ext in config["allowed_extensions"]]
        if allowed and path.suffix.lower() not in allowed:
            raise SourceUnavailableError(
                f"File type {path.suffix or '(none)'} not allowed",
                source=source,
                recoverable=False,
            )

        self.logger.debug(f"Using local source {path}")
        return FetchResult(path=path, source=source, size=path.stat().st_size)


class HTTPFetcherConfig(BaseModel):
    """HTTP fetcher options."""
    timeout: int = Field(default=0, ge=0, le=300, description="Request timeout in seconds (0 = application default)")
    max_retries: int = Field(default=-1, ge=-1, le=10, description="Retries for transient errors (-1 = application default)")
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")
    accept: str = Field(
        default="text/csv, application/rss+xml, application/atom+xml, application/xml, text/xml, */*;q=0.5",
        description="Accept header sent with the request",
    )


class HTTPFetcher(Fetcher):
    """Downloads a source URL to the download directory."""

    plugin_key = "http"
    config_model = HTTPFetcherConfig

    CHUNK_SIZE = 64 * 1024

    def dependencies(self):
        return {"requests", "urllib3"}

    def _session(self, settings: FeedPipeSettings) -> requests.Session:
        config = self.get_config()
        retries = config["max_retries"] if config["max_retries"] >= 0 else settings.limits.max_retries

        session = requests.Session()
        retry_strategy = Retry(
            total=retries,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.headers.update(
            {
                "User-Agent": settings.fetch.user_agent,
                "Accept": config["accept"],
            }
        )
        return session

    def download_path(self, url: str, settings: FeedPipeSettings) -> Path:
        """Stable local path for a URL of this importer."""
        digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]
        suffix = Path(url.split("?", 1)[0]).suffix[:10]
        return Path(settings.fetch.download_dir) / f"{self.id}-{digest}{suffix}"

    def fetch(self, source: str, settings: FeedPipeSettings) -> FetchResult:
        try:
            url = URLValidator.validate_source_url(source)
        except ValidationError as e:
            raise SourceUnavailableError(e.message, source=source, recoverable=False) from e

        config = self.get_config()
        timeout = config["timeout"] or settings.limits.request_timeout
        max_bytes = settings.limits.max_download_mb * 1024 * 1024
        destination = self.download_path(url, settings)
        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(destination.name + ".part")

        self.logger.info(f"Downloading {url}")
        start_time = time.time()
        session = self._session(settings)

        try:
            with session.get(url, timeout=timeout, stream=True, verify=config["verify_ssl"]) as response:
                response.raise_for_status()
                size = 0
                with open(partial, "wb") as handle:
                    for chunk in response.iter_content(chunk_size=self.CHUNK_SIZE):
                        if not chunk:
                            continue
                        size += len(chunk)
                        if size > max_bytes:
                            raise SourceUnavailableError(
                                f"Download exceeds {settings.limits.max_download_mb} MB",
                                source=url,
                                recoverable=False,
                            )
                        handle.write(chunk)
                content_type = response.headers.get("Content-Type")

        except requests.Timeout as e:
            partial.unlink(missing_ok=True)
            raise SourceUnavailableError(
                f"Timed out fetching {url}: {e}",
                source=url,
                error_code=ErrorCode.SOURCE_FETCH_TIMEOUT,
            ) from e
        except requests.RequestException as e:
            partial.unlink(missing_ok=True)
            raise SourceUnavailableError(
                f"Failed to fetch {url}: {e}",
                source=url,
                error_code=ErrorCode.SOURCE_NETWORK_ERROR,
            ) from e
        except SourceUnavailableError:
            partial.unlink(missing_ok=True)
            raise
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise SourceUnavailableError(
                f"Cannot store download of {url}: {e}", source=url
            ) from e
        finally:
            session.close()

        partial.replace(destination)
        self.logger.debug(
            f"Fetched {url} in {time.time() - start_time:.2f}s, size: {size} bytes"
        )
        return FetchResult(
            path=destination,
            source=url,
            size=size,
            content_type=content_type,
            downloaded=True,
        )

    def release(self, result_path: Optional[str]) -> None:
        if not result_path:
            return
        try:
            Path(result_path).unlink(missing_ok=True)
            self.logger.debug(f"Removed download {result_path}")
        except OSError as e:
            self.logger.warning(f"Could not remove download {result_path}: {e}")
