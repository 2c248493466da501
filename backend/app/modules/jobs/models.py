import time
import uuid
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

JOB_QUEUED = "queued"
JOB_RUNNING = "running"
JOB_SUCCEEDED = "succeeded"
JOB_FAILED = "failed"

JOB_STATUSES = (JOB_QUEUED, JOB_RUNNING, JOB_SUCCEEDED, JOB_FAILED)
TERMINAL_STATUSES = (JOB_SUCCEEDED, JOB_FAILED)


class Job(SQLModel, table=True):
    __tablename__ = "jobs"

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    identity: str = Field(index=True)
    type: str
    params: dict = Field(default_factory=dict, sa_column=Column(JSON))
    status: str = Field(default=JOB_QUEUED, index=True)
    result: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: float = Field(default_factory=time.time, index=True)
    updated_at: float = Field(default_factory=time.time)
