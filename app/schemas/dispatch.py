from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatIdsIn(BaseModel):
    chat_ids: list[str] = Field(min_length=1, max_length=10_000)

    @field_validator("chat_ids", mode="before")
    @classmethod
    def coerce_chat_ids(cls, value):
        if isinstance(value, list):
            return [str(item) for item in value]
        return value


class EnqueueOut(BaseModel):
    content_id: str
    added_count: int
    skipped_count: int
    errors: list[str] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "content_id": "8ZqUyDWd6bCcmYrS6bvLXz",
                "added_count": 2,
                "skipped_count": 1,
                "errors": [],
            }
        }
    )


class QueueStatsOut(BaseModel):
    queue: str
    total_items: int
    oldest_item_at: datetime | None = None
    newest_item_at: datetime | None = None


class DrainSummaryOut(BaseModel):
    queue: str
    skipped: bool
    processed: int
    sent: int
    failed: int
    unresolved: int
    orphaned: int
    groups: int
    errors: list[str]
    started_at: datetime | None = None
    finished_at: datetime | None = None


class ScanSummaryOut(BaseModel):
    skipped: bool
    flagged: int
    unflagged: int
    started_at: datetime
    finished_at: datetime
    error: str | None = None


class LastScanOut(BaseModel):
    last_scan_at: datetime | None = None
    is_running: bool
    last_summary: ScanSummaryOut | None = None
