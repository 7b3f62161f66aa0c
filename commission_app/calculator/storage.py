# ==============================================================================
# commission_app/calculator/storage.py
# ------------------------------------------------------------------------------
# Keyed upserts and deletes grouped into bounded atomic batches. Operations are
# queued in memory and only touch the session when the batch commits, so a
# progress write committed between two batches never drags half a batch with it.
# ==============================================================================

import logging

from sqlalchemy.exc import SQLAlchemyError

from commission_app import db
from .errors import BatchCommitError


class WriteBatch:
    """A queue of keyed upserts applied and committed in one transaction."""

    def __init__(self):
        self._operations = []

    def __len__(self):
        return len(self._operations)

    def set(self, model, key, values):
        """Queues an upsert of `model` row `key` with the given column values."""
        self._operations.append((model, key, values))

    def delete(self, model, key):
        """Queues removal of `model` row `key`. A missing row is not an error."""
        self._operations.append((model, key, None))

    def commit(self):
        if not self._operations:
            return 0
        staged = {}
        try:
            for model, key, values in self._operations:
                instance = staged.pop((model, key), None) or db.session.get(model, key)
                if values is None:
                    if instance is not None:
                        db.session.delete(instance)
                    continue
                if instance is None:
                    instance = model(id=key)
                    db.session.add(instance)
                staged[(model, key)] = instance
                for column, value in values.items():
                    setattr(instance, column, value)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise BatchCommitError(f"Batch of {len(self._operations)} operations failed: {e}") from e
        committed = len(self._operations)
        self._operations = []
        return committed


class BatchWriter:
    """
    Rotates WriteBatches so none exceeds `max_operations`. A failed commit is
    logged and counted, then writing continues in a fresh batch.
    """

    def __init__(self, max_operations=400):
        self.max_operations = max_operations
        self.batch = WriteBatch()
        self.committed_operations = 0
        self.failed_batches = 0
        self.lost_operations = 0

    def set(self, model, key, values):
        self.batch.set(model, key, values)
        if len(self.batch) >= self.max_operations:
            self.commit()

    def delete(self, model, key):
        self.batch.delete(model, key)
        if len(self.batch) >= self.max_operations:
            self.commit()

    def commit(self):
        pending = len(self.batch)
        if not pending:
            return
        try:
            self.committed_operations += self.batch.commit()
            logging.info(f"Committed batch of {pending} operations")
        except BatchCommitError as e:
            self.failed_batches += 1
            self.lost_operations += pending
            logging.error(f"Batch commit failed, continuing with a new batch: {e}")
        finally:
            self.batch = WriteBatch()

    def close(self):
        """Commits whatever remains at the end of a run."""
        self.commit()
