"""Transport-neutral entry points of the registry.

Each handler runs one registry operation and renders the outcome as a
Response, mapping the error taxonomy onto status codes. No web framework
is involved; an HTTP layer or queue worker only has to copy the status,
body and headers onto its own response type.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from package_registry.clients.cranlogs import CranlogsClient
from package_registry.errors import InternalError, NotFoundError, RegistryError
from package_registry.ingestion.dispatcher import IngestionDispatcher
from package_registry.reader import VersionReader
from package_registry.store import RegistryStore

logger = logging.getLogger(__name__)

# Header carrying the message type on queue deliveries
TYPE_HEADER = "x-aws-sqsd-attr-type"


@dataclass
class Response:
    """Outcome of a handler call.

    Attributes:
        status: HTTP-equivalent status code.
        body: JSON-serialisable body.
        headers: Response headers.
    """

    status: int
    body: Any
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def error_response(error: RegistryError) -> Response:
    return Response(error.status, error.to_dict())


class RegistryHandlers:
    """Map registry operations onto status/body/header responses.

    Attributes:
        store: Registry store shared by all operations.
        dispatcher: Ingestion dispatcher for both delivery paths.
        reader: Version reader for the retrieval path.
        stats_client: Client for download statistics.
    """

    def __init__(
        self,
        store: RegistryStore,
        stats_client: Optional[CranlogsClient] = None,
        populate_limit: int = VersionReader.DEFAULT_POPULATE_LIMIT,
    ) -> None:
        self.store = store
        self.dispatcher = IngestionDispatcher.from_store(store)
        self.reader = VersionReader(store, populate_limit=populate_limit)
        self.stats_client = stats_client or CranlogsClient()

    def post_description(self, payload: Any) -> Response:
        """Ingest a manifest submitted directly.

        Returns:
            200 with the version document and a Location header, or the
            status of the registry error raised.
        """
        try:
            version = self.dispatcher.dispatch("version", payload)
        except RegistryError as e:
            return error_response(e)
        except Exception:
            logger.exception("Unexpected failure ingesting manifest")
            return error_response(InternalError())

        return Response(200, version.to_dict(), {"Location": version.location})

    def process_message(self, headers: Mapping[str, str], body: Any) -> Response:
        """Ingest a queue-delivered message.

        The message type is read from the queue attribute header, matched
        case-insensitively, falling back to a ``type`` field of the body.
        """
        type_tag = next(
            (value for key, value in headers.items() if key.lower() == TYPE_HEADER),
            None,
        )
        if type_tag is None and isinstance(body, Mapping):
            type_tag = body.get("type")

        try:
            created = self.dispatcher.dispatch(type_tag, body)
        except RegistryError as e:
            return error_response(e)
        except Exception:
            logger.exception("Unexpected failure processing %s message", type_tag)
            return error_response(InternalError())

        return Response(200, created.to_dict())

    def find_by_name_version(self, package_name: str, version: str) -> Response:
        """Return the enriched document of a version, or 404."""
        try:
            enriched = self.reader.find_by_name_version(package_name, version)
        except RegistryError as e:
            return error_response(e)
        except Exception:
            logger.exception("Unexpected failure reading %s %s", package_name, version)
            return error_response(InternalError())

        if enriched is None:
            return error_response(NotFoundError(
                f"Version {version} of {package_name} not found",
                identity={"package_name": package_name, "version": version},
            ))
        return Response(200, enriched.to_dict())

    async def get_download_statistics(self, package_name: str) -> Response:
        """Proxy last-month download statistics for a package."""
        try:
            stats = await self.stats_client.fetch(package_name)
        except RegistryError as e:
            return error_response(e)
        return Response(200, stats)
