import pytest

from palliscribe.datastore import Filter, Include, OrderBy, SQLiteDatastore
from palliscribe.exceptions import DatastoreError


pytestmark = pytest.mark.anyio


async def test_equality_and_inclusion_filters(datastore):
    rows = await datastore.select(
        "tasks",
        [Filter("patient_id", "p-1"), Filter("status", ["pending", "inProgress"], op="in")],
    )

    assert {row["id"] for row in rows} == {"t-1", "t-3", "t-5"}


async def test_range_filters_order_and_limit(datastore):
    rows = await datastore.select(
        "visits",
        [
            Filter("scheduled_time", "2024-01-10", op="gte"),
            Filter("scheduled_time", "2024-01-31", op="lte"),
        ],
        order_by=OrderBy("scheduled_time", descending=True),
        limit=3,
    )

    assert [row["id"] for row in rows] == ["v-4", "v-3", "v-8"]


async def test_empty_inclusion_matches_nothing(datastore):
    assert await datastore.select("tasks", [Filter("status", [], op="in")]) == []


async def test_include_attaches_related_columns(datastore):
    rows = await datastore.select(
        "tasks",
        [Filter("id", "t-2")],
        include=[Include("patients", "patient_id", ("name", "priority"), alias="patient")],
    )

    assert rows[0]["patient"] == {"name": "Walter Brooks", "priority": "medium"}


async def test_include_with_dangling_reference(datastore):
    await datastore.insert("tasks", {"id": "t-orphan", "patient_id": "p-404", "title": "Orphan"})

    rows = await datastore.select("tasks", [Filter("id", "t-orphan")], include=[Include("patients", "patient_id")])

    assert rows[0]["patients"] is None


async def test_insert_fills_id_and_round_trips_json_columns(empty_datastore):
    stored = await empty_datastore.insert("care_plan_notes", {
        "patient_id": "p-1",
        "note_type": "general",
        "content": "Discussed hospice goals",
        "tags": ["general", "medium"],
    })

    assert stored["id"]
    assert stored["created_at"]

    rows = await empty_datastore.select("care_plan_notes")
    assert rows[0]["tags"] == ["general", "medium"]
    assert rows[0]["priority"] == "medium"


async def test_update_and_delete_report_counts(datastore):
    changed = await datastore.update("tasks", [Filter("patient_id", "p-2")], {"status": "completed"})
    assert changed == 3

    removed = await datastore.delete("tasks", [Filter("status", "completed")])
    assert removed == 4

    remaining = await datastore.select("tasks")
    assert {row["id"] for row in remaining} == {"t-1", "t-3", "t-5"}


async def test_unknown_table_raises_datastore_error(datastore):
    with pytest.raises(DatastoreError) as exc_info:
        await datastore.select("no_such_table")

    assert exc_info.value.details["operation"] == "select"


async def test_identifiers_are_validated(datastore):
    with pytest.raises(DatastoreError):
        await datastore.select("patients", [Filter("name; DROP TABLE patients", "x")])

    with pytest.raises(DatastoreError):
        await datastore.insert("patients", {"bad column": "x"})

    assert len(await datastore.select("patients")) == 2


def test_unknown_filter_operator_is_rejected():
    with pytest.raises(ValueError):
        Filter("priority", "high", op="like")


async def test_unreachable_database_fails_connection_check(tmp_path):
    store = SQLiteDatastore(str(tmp_path / "missing-dir" / "db.sqlite3"))

    with pytest.raises(DatastoreError):
        await store.check_connection()
