import json

import pytest

from somigrations.utils.document_store import (
    BulkUpdateResult,
    DocumentStore,
    DocumentStoreError,
    JsonDocumentStore,
    NotFoundError,
)


def test_get_and_not_found(user_comment):
    store = DocumentStore([user_comment])

    assert store.get("cases-comments", "c1") == user_comment
    with pytest.raises(NotFoundError) as excinfo:
        store.get("cases-comments", "missing")
    assert excinfo.value.document_id == "missing"


def test_store_hands_out_copies(user_comment):
    store = DocumentStore([user_comment])

    document = store.get("cases-comments", "c1")
    document["attributes"]["comment"] = "changed"

    assert store.get("cases-comments", "c1")["attributes"]["comment"] == "hello"


def test_find_filters_by_type(user_comment):
    other = {"id": "x", "type": "cases", "attributes": {}}
    store = DocumentStore([user_comment, other])

    assert [document["id"] for document in store.find("cases-comments")] == ["c1"]
    assert len(store) == 2


def test_default_type_applies_to_untyped_documents():
    store = DocumentStore([{"id": "u1", "attributes": {}}], default_type="cases-comments")
    assert store.get("cases-comments", "u1")["id"] == "u1"


def test_documents_need_an_id_and_type():
    with pytest.raises(DocumentStoreError):
        DocumentStore([{"attributes": {}}])


def test_bulk_update_fails_missing_documents_alone(user_comment):
    store = DocumentStore([user_comment])
    updated = {**user_comment, "attributes": {"type": "user", "comment": "updated"}}
    missing = {**user_comment, "id": "ghost"}

    results = store.bulk_update([updated, missing])

    assert [result.success for result in results] == [True, False]
    assert "ghost" in results[1].error
    assert store.get("cases-comments", "c1")["attributes"]["comment"] == "updated"


def test_bulk_update_result_round_trip():
    result = BulkUpdateResult(id="c1", type="cases-comments", success=True)
    assert BulkUpdateResult.from_dict(result.to_dict()) == result


def test_json_store_loads_list_and_wrapped_documents(tmp_path, user_comment):
    listed = tmp_path / "listed.json"
    listed.write_text(json.dumps([user_comment]))
    wrapped = tmp_path / "wrapped.json"
    wrapped.write_text(json.dumps({"documents": [user_comment]}))

    assert len(JsonDocumentStore(str(listed))) == 1
    assert len(JsonDocumentStore(str(wrapped))) == 1


@pytest.mark.parametrize("content", ["not json", '{"documents": 1}', '"text"'])
def test_json_store_rejects_invalid_files(tmp_path, content):
    path = tmp_path / "documents.json"
    path.write_text(content)
    with pytest.raises(DocumentStoreError):
        JsonDocumentStore(str(path))


def test_json_store_missing_file(tmp_path):
    with pytest.raises(DocumentStoreError):
        JsonDocumentStore(str(tmp_path / "missing.json"))


def test_json_store_bulk_update_persists_to_output(tmp_path, user_comment):
    source = tmp_path / "documents.json"
    output = tmp_path / "migrated.json"
    source.write_text(json.dumps([user_comment]))

    store = JsonDocumentStore(str(source), output_path=str(output))
    store.bulk_update([{**user_comment, "references": []}])

    assert json.loads(output.read_text())[0]["references"] == []
    assert json.loads(source.read_text())[0]["references"] is None
    assert not (tmp_path / "migrated.json.tmp").exists()
