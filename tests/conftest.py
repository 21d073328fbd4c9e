"""
Shared pytest configuration and fixtures for the migration engine tests.
"""
import copy
import json
import logging

import pytest

from somigrations.utils.index import LOGGER_NAME, set_debug

LENS_CONFIGURATION = {
    "timeRange": {"from": "now-7d", "to": "now", "mode": "relative"},
    "attributes": {"title": "Events over time", "state": {"query": {"language": "kuery", "query": ""}}},
}

LENS_MARKDOWN = "!{lens" + json.dumps(LENS_CONFIGURATION, separators=(",", ":")) + "}"


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo debug mode and handlers installed by command line runs."""
    yield
    set_debug(False)
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def user_comment():
    return {
        "id": "c1",
        "type": "cases-comments",
        "attributes": {"type": "user", "comment": "hello"},
        "references": None,
    }


@pytest.fixture
def alert_comment():
    return {
        "id": "a1",
        "type": "cases-comments",
        "attributes": {
            "type": "alert",
            "alertId": "alert-1",
            "index": ".alerts-security",
            "rule": {"id": "rule-1", "name": "Suspicious process"},
        },
        "references": [
            {"id": "case-1", "type": "cases", "name": "associated-cases"},
            {"id": "sub-1", "type": "cases-sub-case", "name": "associated-cases-sub-case"},
        ],
    }


@pytest.fixture
def lens_comment_text():
    return f"Investigation notes\n\n{LENS_MARKDOWN}\n\nSee the spike above."


@pytest.fixture
def lens_comment(lens_comment_text):
    return {
        "id": "l1",
        "type": "cases-comments",
        "attributes": {"type": "user", "comment": lens_comment_text},
        "references": [],
    }


def add_description(node):
    node["attributes"] = {**node["attributes"], "description": "migrated"}
    return node


def add_palette(node):
    node["attributes"] = {**node["attributes"], "palette": "default"}
    return node


@pytest.fixture
def visualization_migrations():
    """Visualization owner's node migrations: one eager, one deferred version."""
    return {"8.9.0": add_description, "8.10.0": add_palette}


@pytest.fixture
def make_documents(user_comment, lens_comment):
    def build(count):
        documents = []
        for index in range(count):
            source = lens_comment if index % 2 else user_comment
            document = copy.deepcopy(source)
            document["id"] = f"doc-{index}"
            documents.append(document)
        return documents
    return build
