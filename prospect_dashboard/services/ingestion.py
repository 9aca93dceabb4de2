"""
Tabular Upload Parsing

Turns uploaded to-do and complaint exports into validated row models. Rows
arrive either as JSON objects or as CSV text; both paths end in the same
pydantic models, whose aliases absorb the different column spellings of the
CRM exports (``CONTRACT_ID``, ``contract_id``, ``contractId``...).

Invalid rows are reported, not fatal: each one becomes a RowError with its
1-based row number and the upload continues with the valid rows.
"""

import io
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

import pandas as pd
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

RowModel = TypeVar("RowModel", bound=BaseModel)


@dataclass
class RowError:
    """One rejected input row."""
    field: str
    message: str
    row_number: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "message": self.message, "rowNumber": self.row_number}


def read_csv_rows(text: str) -> Tuple[List[Dict[str, Any]], List[RowError]]:
    """
    Parse CSV text into row dicts.

    Every cell is read as text, empty cells become empty strings and header
    names are trimmed, so ids such as ``00123`` keep their leading zeros.

    Returns:
        Tuple of (rows, errors); errors holds a single file-level entry when
        the text cannot be parsed or has no data rows.
    """
    if not text or not text.strip():
        return [], [RowError(field="file", message="CSV text is empty")]

    try:
        df = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False, skipinitialspace=True)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        return [], [RowError(field="file", message=f"Failed to parse CSV: {e}")]

    if df.empty:
        return [], [RowError(field="file", message="CSV contains no data rows")]

    df.columns = [str(column).strip() for column in df.columns]
    logger.info(f"Parsed CSV with {len(df)} rows and {len(df.columns)} columns")
    return df.to_dict(orient="records"), []


def validate_rows(
    model: Type[RowModel],
    rows: Sequence[Dict[str, Any]],
) -> Tuple[List[RowModel], List[RowError]]:
    """
    Validate row dicts against ``model``.

    Returns:
        Tuple of (valid models, errors for the rejected rows).
    """
    valid: List[RowModel] = []
    errors: List[RowError] = []
    for index, row in enumerate(rows, start=1):
        try:
            valid.append(model.model_validate(row))
        except PydanticValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ())) or "row"
            errors.append(RowError(field=location, message=first.get("msg", "invalid"), row_number=index))

    if errors:
        logger.warning(f"Rejected {len(errors)} of {len(rows)} {model.__name__} rows")
    return valid, errors


def load_rows(
    model: Type[RowModel],
    rows: Optional[Sequence[Dict[str, Any]]] = None,
    csv_text: Optional[str] = None,
) -> Tuple[List[RowModel], List[RowError]]:
    """
    Validate JSON rows, or CSV text when no rows are given.

    Raises:
        ValueError: If neither rows nor CSV text is provided.
    """
    if rows is None and csv_text is None:
        raise ValueError("Provide either rows or csvText")

    errors: List[RowError] = []
    if rows is None:
        rows, errors = read_csv_rows(csv_text or "")
    valid, row_errors = validate_rows(model, rows)
    return valid, errors + row_errors
