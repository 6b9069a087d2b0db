"""Bulk transfer statistics and per-file results."""

from pydantic import BaseModel, Field

from anitilky.models.db.transfer import TransferOutcome, TransferReason

__all__ = ["FileResult", "TransferStats"]


class FileResult(BaseModel):
    """Outcome of processing a single listed file."""

    position: int
    file_id: str
    file_name: str
    file_size: int | None = None
    episode_number: int | None = None
    outcome: TransferOutcome
    reason: TransferReason | None = None
    cdn_url: str | None = None
    bytes_transferred: int = 0
    error_message: str | None = None


class TransferStats(BaseModel):
    """Running counters of a bulk transfer.

    ``processed`` always equals ``successful + failed + skipped``; files that were
    never reached (for example after a cancellation) are not counted.
    """

    total: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[FileResult] = Field(default_factory=list, exclude=True)

    def record(self, result: FileResult) -> None:
        """Count a finished file.

        Args:
            result (FileResult): The file's outcome.
        """
        self.results.append(result)
        self.processed += 1
        match result.outcome:
            case TransferOutcome.SUCCESSFUL:
                self.successful += 1
            case TransferOutcome.FAILED:
                self.failed += 1
            case TransferOutcome.SKIPPED:
                self.skipped += 1

    @property
    def remaining(self) -> int:
        """Number of listed files not processed yet."""
        return max(self.total - self.processed, 0)

    @property
    def progress(self) -> float:
        """Fraction of listed files processed, in ``[0, 1]``."""
        if not self.total:
            return 1.0
        return self.processed / self.total

    def counters(self) -> dict[str, int]:
        """Return the plain counter values."""
        return {
            "total": self.total,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
        }
