"""Unit tests for the transport-neutral handlers."""

import pytest

from package_registry.errors import InternalError
from package_registry.handlers import TYPE_HEADER, RegistryHandlers
from package_registry.parsers import RdParser


@pytest.fixture
def stats_client(mocker):
    client = mocker.Mock()
    client.fetch = mocker.AsyncMock(return_value={"downloads": 0})
    return client


@pytest.fixture
def handlers(store, stats_client) -> RegistryHandlers:
    return RegistryHandlers(store, stats_client=stats_client)


@pytest.fixture
def topic_body(rd_text) -> dict:
    return {**RdParser().parse(rd_text), "package": {"package": "ggplot2", "version": "3.4.2"}}


class TestPostDescription:
    """Test direct manifest submission."""

    def test_success_sets_location(self, handlers, description_text):
        response = handlers.post_description(description_text)

        assert response.status == 200
        assert response.ok
        assert response.headers == {"Location": "/packages/ggplot2/versions/3.4.2"}
        assert response.body["package_name"] == "ggplot2"
        assert response.body["uri"] == "/packages/ggplot2/versions/3.4.2"

    def test_location_for_dotted_name(self, handlers, manifest):
        response = handlers.post_description({**manifest, "PackageName": "R.utils", "Version": "2.12-2"})

        assert response.headers["Location"] == "/packages/R.utils/versions/2.12-2"

    def test_validation_error(self, handlers):
        response = handlers.post_description({"PackageName": "tibble"})

        assert response.status == 400
        assert response.body["error"] == "ValidationError"
        assert {e["field"] for e in response.body["errors"]} >= {"Title", "Version"}
        assert response.headers == {}

    def test_parse_error(self, handlers):
        response = handlers.post_description("no colon here\n")

        assert response.status == 400
        assert response.body["error"] == "ParseError"

    def test_conflict(self, handlers, description_text):
        handlers.post_description(description_text)

        response = handlers.post_description(description_text)

        assert response.status == 409
        assert response.body["identity"] == {"package_name": "ggplot2", "version": "3.4.2"}

    def test_unexpected_error_is_generic(self, handlers, manifest, mocker):
        mocker.patch.object(handlers.dispatcher, "dispatch", side_effect=RuntimeError("secret detail"))

        response = handlers.post_description(manifest)

        assert response.status == 500
        assert response.body == {"error": "InternalError", "message": "Internal error"}


class TestProcessMessage:
    """Test queue-delivered messages."""

    def test_version_message(self, handlers, manifest):
        response = handlers.process_message({TYPE_HEADER: "version"}, manifest)

        assert response.status == 200
        assert response.headers == {}
        assert response.body["package_name"] == "tibble"

    def test_header_is_case_insensitive(self, handlers, manifest):
        response = handlers.process_message({"X-Aws-Sqsd-Attr-Type": "version"}, manifest)

        assert response.status == 200

    def test_type_field_fallback(self, handlers, manifest):
        response = handlers.process_message({}, {**manifest, "type": "version"})

        assert response.status == 200

    def test_topic_message(self, handlers, description_text, topic_body):
        handlers.post_description(description_text)

        response = handlers.process_message({TYPE_HEADER: "topic"}, topic_body)

        assert response.status == 200
        assert response.body["name"] == "geom_point"
        assert response.body["package_version"]["version"] == "3.4.2"

    def test_topic_for_unknown_version(self, handlers, topic_body):
        response = handlers.process_message({TYPE_HEADER: "topic"}, topic_body)

        assert response.status == 404
        assert response.body["error"] == "NotFoundError"

    @pytest.mark.parametrize("headers", [{TYPE_HEADER: "package"}, {}])
    def test_invalid_type(self, store, handlers, manifest, headers):
        response = handlers.process_message(headers, manifest)

        assert response.status == 400
        assert response.body["message"] == "Invalid type"
        assert store.info()["counts"]["package_versions"] == 0

    def test_redelivery_conflicts(self, handlers, manifest):
        handlers.process_message({TYPE_HEADER: "version"}, manifest)

        response = handlers.process_message({TYPE_HEADER: "version"}, manifest)

        assert response.status == 409


class TestFindByNameVersion:
    """Test the retrieval handler."""

    def test_found(self, handlers, description_text):
        handlers.post_description(description_text)

        response = handlers.find_by_name_version("ggplot2", "3.4.2")

        assert response.status == 200
        assert response.body["maintainer"]["email"] == "hadley@example.com"
        assert response.body["package"]["versions"][0]["version"] == "3.4.2"
        assert "rating" not in response.body

    def test_not_found(self, handlers):
        response = handlers.find_by_name_version("ggplot2", "3.4.2")

        assert response.status == 404
        assert response.body["identity"] == {"package_name": "ggplot2", "version": "3.4.2"}


class TestDownloadStatistics:
    """Test the statistics pass-through."""

    @pytest.mark.asyncio
    async def test_passes_document_through(self, handlers, stats_client):
        document = [{"downloads": 1234, "package": "ggplot2"}]
        stats_client.fetch.return_value = document

        response = await handlers.get_download_statistics("ggplot2")

        assert response.status == 200
        assert response.body == document
        stats_client.fetch.assert_awaited_once_with("ggplot2")

    @pytest.mark.asyncio
    async def test_upstream_failure(self, handlers, stats_client):
        stats_client.fetch.side_effect = InternalError("Download statistics unavailable")

        response = await handlers.get_download_statistics("ggplot2")

        assert response.status == 500
        assert response.body["message"] == "Download statistics unavailable"
