"""Client for the cranlogs download statistics service.

The registry does not interpret download counts; the document returned by
the service is handed back to the caller unchanged.
"""

import logging
from typing import Any
from urllib.parse import quote

import aiohttp

from package_registry.clients.http import HttpClient
from package_registry.errors import InternalError

logger = logging.getLogger(__name__)


class CranlogsClient(HttpClient):
    """Fetch last-month download totals from cranlogs.r-pkg.org.

    Use as an async context manager or call close() when done.
    """

    BASE_URL = "https://cranlogs.r-pkg.org"

    def __init__(self, base_url: str = BASE_URL, timeout: float = HttpClient.DEFAULT_TIMEOUT) -> None:
        super().__init__(timeout=timeout)
        self.base_url = base_url.rstrip("/")

    def url_for(self, package_name: str) -> str:
        return f"{self.base_url}/downloads/total/last-month/{quote(package_name, safe='')}"

    async def fetch(self, package_name: str) -> Any:
        """Fetch download statistics for a package.

        Args:
            package_name: Name of the package.

        Returns:
            Decoded JSON document as returned by the service.

        Raises:
            InternalError: If the service is unreachable, answers with a
                non-200 status, or returns a body that is not JSON.
        """
        url = self.url_for(package_name)
        logger.debug("Fetching download statistics from %s", url)

        try:
            session = await self._get_session()
            async with session.get(url) as response:
                if response.status != 200:
                    logger.error(
                        "cranlogs returned status %d for %s", response.status, package_name
                    )
                    raise InternalError("Download statistics unavailable")

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    logger.error(
                        "Failed to parse download statistics for %s: %s", package_name, e
                    )
                    raise InternalError("Download statistics unavailable") from e

        except (aiohttp.ClientError, TimeoutError) as e:
            logger.error("Network error fetching download statistics for %s: %s", package_name, e)
            raise InternalError("Download statistics unavailable") from e
