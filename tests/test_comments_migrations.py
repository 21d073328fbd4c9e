import copy

import pytest

from somigrations.modules.comments import (
    COMMENTS_MIGRATIONS,
    add_association_type,
    add_comment_type,
    add_owner_to_document,
    create_comments_migrations,
    migrate_by_value_lens_visualizations,
    remove_association_type,
    remove_rule_information,
)
from somigrations.utils.registry import MigrationContext, RegistryError, TransformError, TransformRegistry
from somigrations.utils.versions import MalformedVersionError
from tests.conftest import add_description


def test_add_association_type_to_user_comment(user_comment):
    migrated = add_association_type(user_comment, MigrationContext("7.12.0"))

    assert migrated == {
        "id": "c1",
        "type": "cases-comments",
        "attributes": {"type": "user", "comment": "hello", "associationType": "case"},
        "references": [],
    }
    assert "rule" not in migrated["attributes"]


def test_add_association_type_gives_alerts_an_empty_rule(alert_comment):
    migrated = add_association_type(alert_comment)
    assert migrated["attributes"]["rule"] == {"id": None, "name": None}


def test_remove_rule_information_only_touches_alerts(alert_comment, user_comment):
    user_comment["attributes"]["rule"] = {"id": "keep", "name": "keep"}

    migrated_alert = remove_rule_information(alert_comment)
    migrated_user = remove_rule_information(user_comment)

    assert migrated_alert["attributes"]["rule"] == {"id": None, "name": None}
    assert migrated_user["attributes"] == user_comment["attributes"]
    assert migrated_user["references"] == []


def test_remove_rule_information_handles_generated_alerts(alert_comment):
    alert_comment["attributes"]["type"] = "generated_alert"
    assert remove_rule_information(alert_comment)["attributes"]["rule"] == {"id": None, "name": None}


def test_add_comment_type_and_owner(user_comment):
    del user_comment["attributes"]["type"]

    migrated = add_owner_to_document(add_comment_type(user_comment))

    assert migrated["attributes"]["type"] == "user"
    assert migrated["attributes"]["owner"] == "securitySolution"
    assert migrated["references"] == []


def test_remove_association_type_drops_sub_case_references(alert_comment):
    alert_comment["attributes"]["associationType"] = "case"
    original = copy.deepcopy(alert_comment)

    migrated = remove_association_type(alert_comment)

    assert "associationType" not in migrated["attributes"]
    assert [reference["type"] for reference in migrated["references"]] == ["cases"]
    assert alert_comment == original


def test_builtin_table_versions():
    assert sorted(COMMENTS_MIGRATIONS) == ["7.11.0", "7.12.0", "7.14.0", "8.0.0", "8.1.0"]


def test_lens_step_rewrites_embedded_visualizations(lens_comment):
    entry = migrate_by_value_lens_visualizations(add_description, "8.9.0")
    migrated = entry.transform(lens_comment, MigrationContext("8.9.0"))

    assert not entry.deferred
    assert '"description":"migrated"' in migrated["attributes"]["comment"]
    assert migrated["attributes"]["comment"].startswith("Investigation notes\n\n!{lens{")
    assert not migrated["attributes"]["comment"].endswith("\n")
    assert '"description"' not in lens_comment["attributes"]["comment"]


def test_lens_step_keeps_single_trailing_newline(lens_comment):
    lens_comment["attributes"]["comment"] += "\n"
    entry = migrate_by_value_lens_visualizations(add_description, "8.9.0")

    comment = entry.transform(lens_comment)["attributes"]["comment"]
    assert comment.endswith("See the spike above.\n")


def test_lens_step_skips_documents_without_comment(alert_comment):
    entry = migrate_by_value_lens_visualizations(add_description, "8.9.0")
    assert entry.transform(alert_comment) == alert_comment


def test_lens_step_failure_names_the_comment_field(lens_comment):
    lens_comment["attributes"]["comment"] = '!{lens{"timeRange":}}'
    entry = migrate_by_value_lens_visualizations(add_description, "8.9.0")

    with pytest.raises(TransformError) as excinfo:
        entry.transform(lens_comment)

    assert excinfo.value.field == "comment"
    assert excinfo.value.version_step == "8.9.0"
    assert excinfo.value.document_id == "l1"


def test_lens_step_wraps_owner_migration_errors(lens_comment):
    def broken(node):
        raise KeyError("state")

    entry = migrate_by_value_lens_visualizations(broken, "8.9.0")
    with pytest.raises(TransformError):
        entry.transform(lens_comment)


@pytest.mark.parametrize("version, deferred", [
    ("8.9.0", False),
    ("8.10.0", True),
    ("9.0.0", True),
    ("7.14.0", False),
])
def test_deferred_classification_uses_the_step_version(version, deferred):
    assert migrate_by_value_lens_visualizations(add_description, version).deferred is deferred


def test_custom_deferred_threshold():
    assert migrate_by_value_lens_visualizations(add_description, "8.9.0", "8.0.0").deferred


def test_create_comments_migrations_merges_visualization_steps(visualization_migrations):
    registry = create_comments_migrations(visualization_migrations)

    assert registry.versions == ["7.11.0", "7.12.0", "7.14.0", "8.0.0", "8.1.0", "8.9.0", "8.10.0"]
    assert registry.deferred_versions == ["8.10.0"]
    assert "8.9.0" in registry.eager_versions


def test_create_comments_migrations_accepts_factories(visualization_migrations):
    from_map = create_comments_migrations(visualization_migrations)
    from_factory = create_comments_migrations(lambda: TransformRegistry.from_map(visualization_migrations))
    assert from_map.versions == from_factory.versions


def test_shared_version_runs_builtin_and_visualization_steps(alert_comment, lens_comment_text):
    alert_comment["attributes"]["comment"] = lens_comment_text
    registry = create_comments_migrations({"8.0.0": add_description})

    assert len(registry) == 5
    migrated = registry.get("8.0.0").transform(alert_comment, MigrationContext("8.0.0"))
    assert migrated["attributes"]["rule"] == {"id": None, "name": None}
    assert '"description":"migrated"' in migrated["attributes"]["comment"]


def test_create_comments_migrations_without_visualizations():
    registry = create_comments_migrations()
    assert registry.versions == sorted(COMMENTS_MIGRATIONS, key=lambda v: tuple(map(int, v.split("."))))
    assert registry.deferred_versions == []


def test_create_comments_migrations_validates_inputs():
    with pytest.raises(MalformedVersionError):
        create_comments_migrations(min_deferred_version="8.10")
    with pytest.raises(MalformedVersionError):
        create_comments_migrations({"8.9": add_description})
    with pytest.raises(RegistryError):
        create_comments_migrations("not a registry")


def test_builtin_steps_reject_non_list_references(user_comment):
    user_comment["references"] = "case-1"

    with pytest.raises(TransformError) as excinfo:
        add_comment_type(user_comment)

    assert excinfo.value.field == "references"
    assert excinfo.value.document_id == "c1"
