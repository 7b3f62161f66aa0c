# ==============================================================================
# commission_app/calculator/validator.py
# ------------------------------------------------------------------------------
# Decodes uploaded extracts (xlsx or csv) into row dictionaries keyed by header
# and checks them against the header spellings declared in schema.py.
# ==============================================================================

import logging
import os

import pandas as pd

from .errors import FatalConfigError
from .schema import ORDER_FIELDS, REQUIRED_ORDER_FIELDS

CSV_EXTENSIONS = {'.csv', '.txt'}


def read_tabular_file(source, filename=None):
    """
    Reads the first sheet of a spreadsheet, or a delimited text file, into a
    list of row dictionaries. Empty cells become None.

    Args:
        source: A filesystem path or a binary file-like object.
        filename (str): Used to pick the decoder when `source` is a stream.

    Returns:
        list: One dict per data row, keyed by the stripped header text.

    Raises:
        FatalConfigError: The file cannot be decoded or holds no data rows.
    """
    name = filename or (source if isinstance(source, str) else '')
    extension = os.path.splitext(str(name))[1].lower()

    try:
        if extension in CSV_EXTENSIONS:
            # Keep every cell as text; the normalizer parses amounts and dates itself
            df = pd.read_csv(source, dtype=str, keep_default_na=False)
        else:
            df = pd.read_excel(source, sheet_name=0, dtype=object)
    except Exception as e:
        raise FatalConfigError(f"The file could not be read as a spreadsheet or CSV: {e}") from e

    df.columns = [str(column).strip() for column in df.columns]
    df = df.dropna(how='all')
    if df.empty:
        raise FatalConfigError('No data found in file')

    df = df.astype(object).where(pd.notna(df), None)
    rows = df.to_dict(orient='records')
    logging.info(f"Decoded {len(rows)} rows with columns: {list(df.columns)}")
    return rows


def find_missing_fields(rows, fields=ORDER_FIELDS, required=REQUIRED_ORDER_FIELDS):
    """
    Lists the required logical fields for which none of the accepted header
    spellings occurs in the file.
    """
    headers = set()
    for row in rows:
        headers.update(row.keys())
    return [field for field in required if not any(h in headers for h in fields[field])]


def validate_order_rows(rows):
    """
    Returns a list of human-readable problems with an order extract. An empty
    list means the extract can be ingested; rows lacking values are still
    skipped one by one during ingestion.
    """
    errors = []
    if not rows:
        errors.append('The file contains no data rows.')
        return errors

    for field in find_missing_fields(rows):
        accepted = ', '.join(f"'{h}'" for h in ORDER_FIELDS[field])
        errors.append(f"Required column for '{field}' not found. Accepted headers: {accepted}")
    return errors
