"""Unit tests for the joined version reader."""

import sqlite3

import pytest

from package_registry.reader import VersionReader


@pytest.fixture
def reader(store) -> VersionReader:
    return VersionReader(store)


def add_review(db_path, version_id: int, rating: float, username: str, reviewable: str = "version"):
    """Insert a user (if needed) and a review directly into the database."""
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "INSERT OR IGNORE INTO users (username, email) VALUES (?, ?)",
            (username, f"{username}@example.com"),
        )
        user_id = conn.execute(
            "SELECT id FROM users WHERE username = ?", (username,)
        ).fetchone()[0]
        conn.execute(
            "INSERT INTO reviews (user_id, reviewable, reviewable_id, rating, text) VALUES (?, ?, ?, ?, ?)",
            (user_id, reviewable, version_id, rating, f"Review by {username}"),
        )


class TestFindByNameVersion:
    """Test retrieval of a version with all of its relations."""

    def test_missing_version_returns_none(self, reader, ingested_version):
        assert reader.find_by_name_version("ggplot2", "0.0.1") is None
        assert reader.find_by_name_version("nothing", "3.4.2") is None

    def test_missing_version_skips_rating_query(self, reader, mocker):
        spy = mocker.spy(reader, "average_rating")

        assert reader.find_by_name_version("ggplot2", "3.4.2") is None
        spy.assert_not_called()

    def test_version_fields(self, reader, ingested_version):
        enriched = reader.find_by_name_version("ggplot2", "3.4.2")

        assert enriched.version == ingested_version
        assert enriched.package.name == "ggplot2"
        assert enriched.maintainer.name == "Hadley Wickham"
        assert enriched.maintainer.email == "hadley@example.com"

    def test_authors_in_manifest_order(self, reader, ingested_version):
        enriched = reader.find_by_name_version("ggplot2", "3.4.2")

        assert [a.name for a in enriched.authors] == ["Hadley Wickham", "Winston Chang", "Lionel Henry"]

    def test_dependencies_grouped_by_kind(self, reader, version_ingestor, manifest):
        version_ingestor.create(
            {**manifest, "Suggests": "knitr", "Depends": "R (>= 3.1), methods", "Import": "cli, glue (>= 1.6)"}
        )

        enriched = reader.find_by_name_version("tibble", "3.2.1")

        assert [(d.kind, d.package.name, d.constraint) for d in enriched.dependencies] == [
            ("depends", "methods", None),
            ("imports", "cli", None),
            ("imports", "glue", ">= 1.6"),
            ("suggests", "knitr", None),
        ]

    def test_sibling_versions_newest_first(self, store, version_ingestor, manifest):
        for version, date in [("1.0.0", "2021-01-01"), ("2.0.0", "2023-01-01"), ("1.5.0", "2022-01-01")]:
            version_ingestor.create({**manifest, "Version": version, "Date": date})

        enriched = VersionReader(store, populate_limit=2).find_by_name_version("tibble", "1.0.0")

        assert [v.version for v in enriched.sibling_versions] == ["2.0.0", "1.5.0"]

    def test_topics_capped_and_linked(self, store, ingested_version, topic_ingestor):
        for name in ["b_topic", "a_topic", "c_topic"]:
            topic_ingestor.create({"name": name, "title": name.upper()}, "ggplot2", "3.4.2")

        enriched = VersionReader(store, populate_limit=2).find_by_name_version("ggplot2", "3.4.2")

        assert [t.name for t in enriched.topics] == ["a_topic", "b_topic"]
        assert enriched.topics[0].package_version == ingested_version

    def test_reviews_expose_public_user_identity(self, reader, ingested_version, db_path):
        add_review(db_path, ingested_version.id, 4, "alice")

        document = reader.find_by_name_version("ggplot2", "3.4.2").to_dict()

        review = document["reviews"][0]
        assert review["user"]["username"] == "alice"
        assert set(review["user"]) == {"id", "username"}
        assert "alice@example.com" not in str(document)


class TestRating:
    """Test the review rating aggregate."""

    def test_no_reviews_no_rating(self, reader, ingested_version):
        enriched = reader.find_by_name_version("ggplot2", "3.4.2")

        assert enriched.rating is None
        assert "rating" not in enriched.to_dict()

    def test_average_of_ratings(self, reader, ingested_version, db_path):
        add_review(db_path, ingested_version.id, 4, "alice")
        add_review(db_path, ingested_version.id, 5, "bob")

        enriched = reader.find_by_name_version("ggplot2", "3.4.2")

        assert enriched.rating == 4.5
        assert enriched.to_dict()["rating"] == 4.5
        assert len(enriched.reviews) == 2

    def test_other_reviewables_ignored(self, reader, ingested_version, db_path):
        """Test that reviews of other subject types sharing the id are not counted."""
        add_review(db_path, ingested_version.id, 1, "alice", reviewable="package")
        add_review(db_path, ingested_version.id, 3, "bob")

        enriched = reader.find_by_name_version("ggplot2", "3.4.2")

        assert enriched.rating == 3.0
        assert len(enriched.reviews) == 1

    def test_average_rating_without_reviews(self, reader, ingested_version):
        assert reader.average_rating(ingested_version.id) is None
