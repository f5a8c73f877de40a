from .run_log import (
    RunLog,
    LogStore,
    BigQueryLogStore,
    CsvLogStore,
    create_log_store,
)

__all__ = [
    "RunLog",
    "LogStore",
    "BigQueryLogStore",
    "CsvLogStore",
    "create_log_store",
]
