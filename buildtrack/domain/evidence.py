"""Evidence intake rules."""

from dataclasses import dataclass
from enum import StrEnum

from buildtrack.domain.results import CoreError, ErrorKind


class EvidenceStatus(StrEnum):
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ReviewAction(StrEnum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


@dataclass(frozen=True)
class EvidenceFileInput:
    """An uploaded file as received from the caller."""

    file_name: str
    mime_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def validate_submission(
    qty_or_percent: float,
    files: list[EvidenceFileInput],
    max_file_size_mb: int,
) -> CoreError | None:
    """Quantity must be within 0..100 and at least one file under the size limit is required."""
    if qty_or_percent is None or qty_or_percent < 0 or qty_or_percent > 100:
        return CoreError(ErrorKind.INVALID_INPUT, "Quantity or percent must be between 0 and 100")
    if not files:
        return CoreError(ErrorKind.INVALID_INPUT, "At least one file is required")
    max_bytes = max_file_size_mb * 1024 * 1024
    for f in files:
        if not f.file_name:
            return CoreError(ErrorKind.INVALID_INPUT, "File name is required")
        if f.size > max_bytes:
            return CoreError(
                ErrorKind.INVALID_INPUT,
                f"File {f.file_name} exceeds maximum size of {max_file_size_mb}MB",
                {"file_name": f.file_name, "size": f.size},
            )
    return None
