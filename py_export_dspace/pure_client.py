import logging
import random
import time
from collections.abc import Iterable
from pathlib import Path

import httpx

from py_export_dspace.config import Settings
from py_export_dspace.matching.pure_records import pure_record_path

USER_AGENT = "py-export-dspace/0.1.0"

logger = logging.getLogger(__name__)


class PureClient:
    """Fetches Pure research-output records into the local lookup files.

    Each record is requested by its source id (rmid) and saved, unchanged, at
    the path the matchers read it from.
    """

    def __init__(
        self,
        settings: Settings,
        client: httpx.Client | None = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
    ):
        """Initializes the client.

        Args:
            settings: Supplies the API URL, key, fields and lookup file layout.
            client: An optional httpx.Client for making requests.
            max_retries: Maximum number of attempts for a failed request.
            backoff_base: Seconds to wait before the first retry; doubled on
                          each further retry.
        """
        self.settings = settings
        self.client = client or httpx.Client(follow_redirects=True, timeout=30.0)
        self.client.headers["User-Agent"] = USER_AGENT
        self.client.headers["Accept"] = "application/xml"
        self.client.headers["api-key"] = settings.pure_api_key
        self.max_retries = max_retries
        self.backoff_base = backoff_base

    def _fetch_url(self, url: str, params: dict[str, str]) -> bytes | None:
        for attempt in range(self.max_retries):
            try:
                response = self.client.get(url, params=params)
                response.raise_for_status()
                return response.content
            except httpx.HTTPError as e:
                logger.warning(
                    "Request to %s failed on attempt %d/%d: %s",
                    url,
                    attempt + 1,
                    self.max_retries,
                    e,
                )
                if attempt + 1 == self.max_retries:
                    logger.error("All retries for %s failed.", url)
                    return None
                # Exponential backoff with jitter
                time.sleep(self.backoff_base * (2**attempt) + random.uniform(0, 1))
        return None

    def fetch_record(self, rmid: str) -> Path | None:
        """Fetch one record and write it to its lookup file path.

        Returns:
            The file written, or None if the record could not be fetched.
        """
        url = f"{self.settings.pure_api_url.rstrip('/')}/{rmid}"
        params = {"idClassification": "source", "fields": self.settings.pure_api_fields}
        content = self._fetch_url(url, params)
        if content is None:
            return None

        if b"</error>" in content:
            logger.error("API error returned for rmid %s", rmid)
            return None

        fpath = pure_record_path(rmid, self.settings)
        fpath.parent.mkdir(parents=True, exist_ok=True)
        fpath.write_bytes(content)
        logger.info("Wrote %s", fpath)
        return fpath

    def fetch_records(self, rmids: Iterable[str]) -> list[Path]:
        written = []
        for rmid in rmids:
            fpath = self.fetch_record(rmid)
            if fpath:
                written.append(fpath)
        return written
