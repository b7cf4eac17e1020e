from datetime import datetime

from jobsync.schemas.external_jobs import CamelModel


class SchedulerStatusOut(CamelModel):
    is_running: bool
    is_currently_executing: bool
    last_run: datetime | None = None
    next_run: datetime | None = None
    run_count: int
    interval_hours: int
    enabled: bool
    cron_expression: str


class SchedulerActionOut(CamelModel):
    message: str
    status: SchedulerStatusOut
