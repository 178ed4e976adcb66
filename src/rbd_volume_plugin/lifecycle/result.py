"""Operation result types for the volume lifecycle."""

from enum import Enum

from pydantic import BaseModel


class OperationStatus(str, Enum):
    """Operation status values."""

    COMPLETED = "completed"

    # Unmount
    ALREADY_UNMOUNTED = "already_unmounted"
    STILL_REFERENCED = "still_referenced"


class OperationResult(BaseModel):
    """Result of a mutating lifecycle operation.

    A redundant Unmount from Docker is answered with a status other than
    COMPLETED instead of an error. references is the number of callers
    still holding the volume afterwards.
    """

    status: OperationStatus
    message: str = ""
    references: int = 0
