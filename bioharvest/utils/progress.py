# bioharvest/utils/progress.py
import enum
from datetime import datetime
from typing import Optional


class EnrollmentStatus(str, enum.Enum):
    ENROLLED = "enrolled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


def derive_status(completed: int, total: int, completed_at: Optional[datetime] = None) -> EnrollmentStatus:
    # completed_at pins the status once reached, so adding sections later cannot regress it
    if completed_at is not None:
        return EnrollmentStatus.COMPLETED
    if total > 0 and completed >= total:
        return EnrollmentStatus.COMPLETED
    if completed > 0:
        return EnrollmentStatus.IN_PROGRESS
    return EnrollmentStatus.ENROLLED


def progress_percentage(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return min(100, round(completed * 100 / total))


def is_certificate_eligible(completed: int, total: int, min_progress: int = 80) -> bool:
    # integer cross-multiplication: 4/5 must pass an 80 threshold exactly
    if total <= 0:
        return False
    return completed * 100 >= total * min_progress
