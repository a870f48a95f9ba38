"""Unit tests for the ingestion dispatcher."""

import pytest

from package_registry.errors import ConflictError, ValidationError
from package_registry.ingestion import (
    IngestionDispatcher,
    TopicRequest,
    VersionRequest,
    build_request,
)
from package_registry.models import PackageVersion, Topic
from package_registry.parsers import RdParser


@pytest.fixture
def dispatcher(store) -> IngestionDispatcher:
    return IngestionDispatcher.from_store(store)


@pytest.fixture
def topic_message(rd_text) -> dict:
    """Parsed topic fields with the nested reference to their package version."""
    return {**RdParser().parse(rd_text), "package": {"package": "ggplot2", "version": "3.4.2"}}


class TestBuildRequest:
    """Test turning type tags and payloads into typed requests."""

    def test_version_request(self, manifest):
        assert build_request("version", manifest) == VersionRequest(payload=manifest)

    def test_topic_request(self, topic_message):
        request = build_request("topic", topic_message)

        assert isinstance(request, TopicRequest)
        assert request.package_name == "ggplot2"
        assert request.package_version == "3.4.2"

    @pytest.mark.parametrize("type_tag", ["package", "VERSION", "", None])
    def test_invalid_type(self, type_tag):
        with pytest.raises(ValidationError) as exc_info:
            build_request(type_tag, {})

        assert exc_info.value.message == "Invalid type"

    def test_topic_without_package_reference(self):
        with pytest.raises(ValidationError) as exc_info:
            build_request("topic", {"name": "x", "title": "X"})

        assert exc_info.value.errors[0]["field"] == "package"

    def test_topic_with_incomplete_reference(self):
        with pytest.raises(ValidationError) as exc_info:
            build_request("topic", {"package": {"package": "ggplot2"}})

        assert exc_info.value.errors == [{"field": "package.version", "message": "is required"}]


class TestDispatch:
    """Test routing of requests to the ingestors."""

    def test_routes_by_type(self, mocker):
        version_ingestor = mocker.Mock()
        topic_ingestor = mocker.Mock()
        dispatcher = IngestionDispatcher(version_ingestor, topic_ingestor)
        payload = {"package": {"package": "cli", "version": "3.6.1"}, "name": "x"}

        dispatcher.dispatch("version", {"PackageName": "cli"})
        dispatcher.dispatch("topic", payload)

        version_ingestor.create.assert_called_once_with({"PackageName": "cli"})
        topic_ingestor.create.assert_called_once_with(payload, "cli", "3.6.1")

    def test_version_then_topic(self, dispatcher, description_text, topic_message):
        version = dispatcher.dispatch("version", description_text)
        topic = dispatcher.dispatch("topic", topic_message)

        assert isinstance(version, PackageVersion)
        assert isinstance(topic, Topic)
        assert topic.package_version_id == version.id

    def test_invalid_type_writes_nothing(self, store, dispatcher, manifest):
        with pytest.raises(ValidationError, match="Invalid type"):
            dispatcher.dispatch("package", manifest)

        assert all(count == 0 for count in store.info()["counts"].values())

    def test_redelivery_conflicts(self, dispatcher, description_text, topic_message):
        """Test that a redelivered message is rejected rather than duplicated."""
        dispatcher.dispatch("version", description_text)
        dispatcher.dispatch("topic", topic_message)

        with pytest.raises(ConflictError):
            dispatcher.dispatch("version", description_text)
        with pytest.raises(ConflictError):
            dispatcher.dispatch("topic", topic_message)
