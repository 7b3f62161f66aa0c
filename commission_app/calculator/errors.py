# ==============================================================================
# commission_app/calculator/errors.py
# ------------------------------------------------------------------------------
# Error taxonomy of the commission engine. Only FatalConfigError is meant to
# reach a caller; the others are recovered where they are raised and show up
# as counters in the returned stats.
# ==============================================================================


class CommissionError(Exception):
    """Base class for every error raised by the commission engine."""


class RowError(CommissionError):
    """A single input row is malformed or lacks a required field."""

    def __init__(self, row_number, missing):
        self.row_number = row_number
        self.missing = list(missing)
        super().__init__(f"Row {row_number}: missing {', '.join(self.missing)}")


class ReferenceDataMissing(CommissionError):
    """Reference data (a rate table, a rule document) needed for one order is absent."""


class BatchCommitError(CommissionError):
    """A pending write batch could not be committed; its writes are lost."""


class ClassificationLookupError(CommissionError):
    """The order-history lookup behind customer classification failed."""


class FatalConfigError(CommissionError):
    """The run cannot proceed at all (no rate tables, no input rows)."""
