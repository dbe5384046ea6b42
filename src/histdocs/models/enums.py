from enum import StrEnum


class DocumentType(StrEnum):
    LETTER = "letter"
    REPORT = "report"
    PHOTO = "photo"
    NEWSPAPER = "newspaper"
    LIST = "list"
    DIARY_ENTRY = "diary_entry"
    BOOK = "book"
    MAP = "map"
    BIOGRAPHY = "biography"


class EntityType(StrEnum):
    PERSON = "person"
    LOCATION = "location"
    ORGANIZATION = "organization"
    EVENT = "event"
    DATE = "date"
    UNIT = "unit"


class JobStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)
