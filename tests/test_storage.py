import json

import pytest

from finance_core.exceptions import PersistenceError, RecordNotFoundError, ValidationError
from finance_core.storage import JSONDocumentStore


def test_add_assigns_id_and_get_returns_copy(store: JSONDocumentStore):
    doc_id = store.add("expenses", {"user_id": "u1", "amount": "5.00"})
    doc = store.get("expenses", doc_id)
    assert doc == {"user_id": "u1", "amount": "5.00", "id": doc_id}

    doc["amount"] = "999.00"
    assert store.get("expenses", doc_id)["amount"] == "5.00"
    assert store.get("expenses", "missing") is None


def test_collections_persist_as_json_files(store: JSONDocumentStore):
    doc_id = store.add("budgets", {"user_id": "u1"})
    path = store.base_path / "budgets.json"
    assert json.loads(path.read_text(encoding="utf-8")) == [{"user_id": "u1", "id": doc_id}]

    reopened = JSONDocumentStore(store.base_path)
    assert reopened.get("budgets", doc_id)["user_id"] == "u1"


def test_query_by_owner_and_date_range(store: JSONDocumentStore):
    store.add("expenses", {"user_id": "u1", "date": "2026-02-27T09:00:00Z"})
    march = store.add("expenses", {"user_id": "u1", "date": "2026-03-02T09:00:00Z"})
    store.add("expenses", {"user_id": "u2", "date": "2026-03-03T09:00:00Z"})

    results = store.query(
        "expenses",
        [
            ("user_id", "==", "u1"),
            ("date", ">=", "2026-03-01T00:00:00Z"),
            ("date", "<", "2026-04-01T00:00:00Z"),
        ],
    )
    assert [doc["id"] for doc in results] == [march]


def test_query_array_contains_and_missing_fields(store: JSONDocumentStore):
    tagged = store.add("expenses", {"user_id": "u1", "tags": ["work", "travel"]})
    store.add("expenses", {"user_id": "u1", "tags": ["home"]})
    store.add("expenses", {"user_id": "u1"})

    results = store.query("expenses", [("tags", "array-contains", "work")])
    assert [doc["id"] for doc in results] == [tagged]
    assert store.query("expenses", [("amount", "==", "1.00")]) == []


def test_mismatched_types_do_not_match(store: JSONDocumentStore):
    store.add("investments", {"quantity": "3"})
    assert store.query("investments", [("quantity", ">", 1)]) == []


def test_unknown_operator_is_rejected(store: JSONDocumentStore):
    with pytest.raises(ValidationError):
        store.query("expenses", [("amount", "~=", 1)])


def test_update_merges_and_set_overwrites(store: JSONDocumentStore):
    doc_id = store.add("savings_goals", {"name": "Car", "current_amount": "0.00"})
    updated = store.update("savings_goals", doc_id, {"current_amount": "50.00"})
    assert updated == {"name": "Car", "current_amount": "50.00", "id": doc_id}

    store.set("savings_goals", doc_id, {"name": "Bike"})
    assert store.get("savings_goals", doc_id) == {"name": "Bike", "id": doc_id}


def test_update_and_delete_missing_raise(store: JSONDocumentStore):
    with pytest.raises(RecordNotFoundError):
        store.update("expenses", "nope", {"amount": "1.00"})
    with pytest.raises(RecordNotFoundError):
        store.delete("expenses", "nope")


def test_delete_removes_document(store: JSONDocumentStore):
    doc_id = store.add("categories", {"name": "Food"})
    store.delete("categories", doc_id)
    assert store.query("categories") == []


def test_corrupted_file_raises_persistence_error(store: JSONDocumentStore):
    (store.base_path / "expenses.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(PersistenceError):
        store.query("expenses")


def test_non_list_payload_raises_persistence_error(store: JSONDocumentStore):
    (store.base_path / "expenses.json").write_text('{"id": "x"}', encoding="utf-8")
    with pytest.raises(PersistenceError):
        store.get("expenses", "x")


def test_modify_applies_callable_to_stored_document(store: JSONDocumentStore):
    doc_id = store.add("savings_goals", {"user_id": "u1", "current_amount": "10.00"})
    updated = store.modify(
        "savings_goals", doc_id, lambda doc: {**doc, "current_amount": "15.00", "id": "other"}
    )
    assert updated == {"user_id": "u1", "current_amount": "15.00", "id": doc_id}
    assert store.get("savings_goals", doc_id) == updated

    with pytest.raises(RecordNotFoundError):
        store.modify("savings_goals", "missing", lambda doc: doc)


def test_modify_writes_nothing_when_callable_raises(store: JSONDocumentStore):
    doc_id = store.add("savings_goals", {"user_id": "u1", "current_amount": "10.00"})

    def reject(doc):
        raise ValidationError("nope")

    with pytest.raises(ValidationError):
        store.modify("savings_goals", doc_id, reject)
    assert store.get("savings_goals", doc_id)["current_amount"] == "10.00"
