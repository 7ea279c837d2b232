"""ORM models for causation runs and loan checkpoints."""

from causation_batch.models.process_run import LoanProcessStateModel, ProcessRunModel

__all__ = ["LoanProcessStateModel", "ProcessRunModel"]
