"""
Run Log Tests

Tests cover:
- CSV store header, append order and last_row_index
- BigQuery store table creation, streaming insert and retries
- RunLog keeps going when the store fails
"""

import csv
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from tenacity import wait_none

from warehouse_watch.app.config import Settings
from warehouse_watch.core.metadata.run_log import (
    BigQueryLogStore,
    CsvLogStore,
    LogStore,
    RunLog,
    create_log_store,
)

TS = datetime(2026, 10, 18, 6, 0, tzinfo=timezone.utc)


# ============================================
# CSV Store
# ============================================

class TestCsvLogStore:

    def test_writes_header_once(self, tmp_path):
        path = tmp_path / "logs" / "run_log.csv"
        store = CsvLogStore(str(path))

        store.append(TS, "Dup check 3 rows returned.")
        store.append(TS, "Staleness No rows returned.")

        with open(path, newline="") as f:
            rows = list(csv.reader(f))

        assert rows[0] == ["timestamp", "message"]
        assert rows[1] == [TS.isoformat(), "Dup check 3 rows returned."]
        assert rows[2][1] == "Staleness No rows returned."

    def test_last_row_index_counts_entries(self, tmp_path):
        store = CsvLogStore(str(tmp_path / "run_log.csv"))

        assert store.last_row_index() == 0
        store.append(TS, "one")
        store.append(TS, "two")

        assert store.last_row_index() == 2

    def test_message_with_comma_round_trips(self, tmp_path):
        store = CsvLogStore(str(tmp_path / "run_log.csv"))

        store.append(TS, "Broken check Query failed: notFound: Table a, b")

        with open(store.path, newline="") as f:
            rows = list(csv.reader(f))
        assert rows[1][1] == "Broken check Query failed: notFound: Table a, b"

    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(CsvLogStore(str(tmp_path / "x.csv")), LogStore)


# ============================================
# BigQuery Store
# ============================================

class TestBigQueryLogStore:

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.insert_rows_json.return_value = []
        return client

    @pytest.fixture
    def store(self, client):
        store = BigQueryLogStore(
            project_id="warehouse-watch-test",
            dataset="warehouse_watch",
            table="check_run_log",
            client=client,
            max_retry_attempts=2
        )
        store.retry_wait = wait_none()
        return store

    def test_append_creates_partitioned_table_once(self, store, client):
        store.append(TS, "one")
        store.append(TS, "two")

        client.create_table.assert_called_once()
        table = client.create_table.call_args[0][0]
        assert table.table_id == "check_run_log"
        assert table.time_partitioning.field == "timestamp"
        assert client.create_table.call_args[1] == {"exists_ok": True}

    def test_append_streams_one_row_with_row_id(self, store, client):
        store.append(TS, "Dup check 3 rows returned.")

        args, kwargs = client.insert_rows_json.call_args
        assert args[0] == "warehouse-watch-test.warehouse_watch.check_run_log"
        assert args[1] == [{"timestamp": TS.isoformat(), "message": "Dup check 3 rows returned."}]
        assert len(kwargs["row_ids"]) == 1

    def test_insert_errors_are_retried_then_raised(self, store, client):
        client.insert_rows_json.return_value = [{"index": 0, "errors": ["invalid"]}]

        with pytest.raises(ValueError, match="Failed to insert run log row"):
            store.append(TS, "one")

        assert client.insert_rows_json.call_count == 2

    def test_retry_reuses_the_same_row_id(self, store, client):
        client.insert_rows_json.side_effect = [TimeoutError("read timed out"), []]

        store.append(TS, "Dup check 3 rows returned.")

        first, second = client.insert_rows_json.call_args_list
        assert first[1]["row_ids"] == second[1]["row_ids"]
        assert first[0][1] == second[0][1]

    def test_each_append_gets_its_own_row_id(self, store, client):
        store.append(TS, "one")
        store.append(TS, "two")

        first, second = client.insert_rows_json.call_args_list
        assert first[1]["row_ids"] != second[1]["row_ids"]

    def test_last_row_index_counts_table_rows(self, store, client):
        client.query.return_value.result.return_value = [{"n": 4}]

        assert store.last_row_index() == 4
        assert "check_run_log" in client.query.call_args[0][0]


# ============================================
# Store selection
# ============================================

def test_create_log_store_csv(tmp_path):
    config = Settings(
        gcp_project_id="warehouse-watch-test",
        run_log_backend="csv",
        run_log_csv_path=str(tmp_path / "log.csv")
    )

    store = create_log_store(config)

    assert isinstance(store, CsvLogStore)
    assert store.path == tmp_path / "log.csv"


def test_create_log_store_bigquery():
    config = Settings(
        gcp_project_id="warehouse-watch-test",
        run_log_backend="bigquery",
        run_log_dataset="ops_logs",
        run_log_table="checks",
        run_log_max_retry_attempts=5
    )

    store = create_log_store(config)

    assert isinstance(store, BigQueryLogStore)
    assert store.table_id == "warehouse-watch-test.ops_logs.checks"
    assert store.max_retry_attempts == 5


# ============================================
# RunLog
# ============================================

@pytest.mark.asyncio
async def test_run_log_appends_timestamped_entry(log_store):
    run_log = RunLog(log_store)

    entry = await run_log.log("Dup check 3 rows returned.")

    assert entry.message == "Dup check 3 rows returned."
    assert entry.timestamp.tzinfo is not None
    assert log_store.rows == [(entry.timestamp, entry.message)]
    assert run_log.last_row_index() == 1


@pytest.mark.asyncio
async def test_run_log_store_failure_is_not_raised(failing_log_store):
    run_log = RunLog(failing_log_store)

    entry = await run_log.log("Staleness No rows returned.")

    assert entry.message == "Staleness No rows returned."
    assert failing_log_store.rows == []
