"""
Check Configuration Loader

Loads the ordered check definitions table from YAML or CSV.

Both formats describe the same table: a header row (row 1) followed by one
check per row starting at row 2, with columns title, sql and optional
recipients. Every row is returned, blank ones included; where the active list
ends is decided by the orchestrator.
"""

import csv
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from warehouse_watch.core.checks.models import CheckDefinition
from warehouse_watch.core.exceptions import CheckConfigError
from warehouse_watch.core.utils.logging import get_logger

logger = get_logger(__name__)

FIRST_DATA_ROW = 2
REQUIRED_COLUMNS = ("title", "sql")

_RECIPIENT_SPLIT = re.compile(r"[,;]")


def parse_recipients(value: Union[str, List[str], None]) -> List[str]:
    """
    Split a delimiter-separated recipient cell into addresses.

    Accepts "a@x.com, b@x.com", "a@x.com;b@x.com" or an already split list.
    """
    if not value:
        return []
    if isinstance(value, str):
        value = _RECIPIENT_SPLIT.split(value)
    return [addr.strip() for addr in value if addr and addr.strip()]


class CheckRow(BaseModel):
    """A raw check row as written in the YAML file."""
    title: Optional[str] = Field(default="")
    sql: Optional[str] = Field(default="")
    recipients: Union[str, List[str], None] = Field(default=None)

    @field_validator("title", "sql", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return "" if v is None else str(v)


class CheckConfigFile(BaseModel):
    """Root structure of a checks YAML file."""
    version: str = Field(default="1.0", description="Config version")
    checks: List[CheckRow] = Field(default_factory=list)


class YamlCheckSource:
    """Check definitions from a YAML file with a top-level `checks:` list."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> List[CheckDefinition]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise CheckConfigError(f"Cannot read check config: {e}", str(self.path), e) from e

        if not data:
            return []

        try:
            config_file = CheckConfigFile(**data)
        except (TypeError, ValidationError) as e:
            raise CheckConfigError(f"Malformed check config: {e}", str(self.path), e) from e

        return [
            CheckDefinition(
                title=row.title,
                sql=row.sql,
                recipients=parse_recipients(row.recipients),
                row_number=index
            )
            for index, row in enumerate(config_file.checks, start=FIRST_DATA_ROW)
        ]


class CsvCheckSource:
    """Check definitions from a CSV table whose first row is the header."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> List[CheckDefinition]:
        try:
            with open(self.path, "r", encoding="utf-8", newline="") as f:
                reader = csv.reader(f)
                header = next(reader, None)
                if header is None:
                    return []
                columns = self._column_index(header)
                rows = list(reader)
        except (OSError, csv.Error) as e:
            raise CheckConfigError(f"Cannot read check config: {e}", str(self.path), e) from e

        checks = []
        for row_number, row in enumerate(rows, start=FIRST_DATA_ROW):
            cells = self._pick(row, columns)
            checks.append(
                CheckDefinition(
                    title=cells["title"],
                    sql=cells["sql"],
                    recipients=parse_recipients(cells.get("recipients")),
                    row_number=row_number
                )
            )
        return checks

    def _column_index(self, header: List[str]) -> Dict[str, int]:
        columns = {name.strip().lower(): i for i, name in enumerate(header)}
        missing = [c for c in REQUIRED_COLUMNS if c not in columns]
        if missing:
            raise CheckConfigError(
                f"Check table header is missing column(s): {', '.join(missing)}",
                str(self.path)
            )
        return columns

    @staticmethod
    def _pick(row: List[str], columns: Dict[str, int]) -> Dict[str, str]:
        return {
            name: row[i] if i < len(row) else ""
            for name, i in columns.items()
        }


def load_checks(path: Union[str, Path]) -> List[CheckDefinition]:
    """
    Load check definitions, choosing the reader from the file extension.

    Args:
        path: Path to a .yml/.yaml or .csv check table

    Returns:
        Check definitions in table order

    Raises:
        CheckConfigError: Unsupported extension, unreadable or malformed file
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix in (".yml", ".yaml"):
        source = YamlCheckSource(path)
    elif suffix == ".csv":
        source = CsvCheckSource(path)
    else:
        raise CheckConfigError(f"Unsupported check config format: {suffix or '<none>'}", str(path))

    checks = source.load()
    logger.info(f"Loaded {len(checks)} check rows from {path.name}", extra={"path": str(path)})
    return checks
