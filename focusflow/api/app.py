"""FastAPI web application for FocusFlow.

Exposes task CRUD, the authoritative timer store, completion statistics and
AI schedule generation. Every route is scoped to the authenticated user.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from focusflow import __version__
from focusflow.auth.dependencies import get_current_user
from focusflow.database.database import SessionLocal, get_db, init_db
from focusflow.database.repository import TaskRepository
from focusflow.database.subtask_repository import SubtaskRepository
from focusflow.database.timer_repository import BatchUpdateResult, DurationUpdate, TimerRepository
from focusflow.engine import daily_reset
from focusflow.engine.completion import CompletionStats, completion_stats
from focusflow.engine.flexible import suggest_flexible_task_times, with_suggestions
from focusflow.engine.time_utils import parse_day, today_local_iso, utc_now
from focusflow.errors import InvalidFormat, NotFound
from focusflow.integrations.openai_client import OpenAIScheduleGenerator
from focusflow.models.task import (
    FlexibleSchedule,
    ManualStatus,
    Schedule,
    Subtask,
    Task,
    TaskDescriptor,
    TimelessSchedule,
)
from focusflow.models.task_factory import create_task_base, create_task_from_descriptor
from focusflow.models.user import User

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    reset_job = None
    if daily_reset.DAILY_RESET_ENABLED:
        reset_job = asyncio.create_task(
            daily_reset.daily_reset_loop(lambda: daily_reset.run_daily_reset(SessionLocal))
        )
        logger.info("Daily reset job scheduled")
    try:
        yield
    finally:
        if reset_job is not None:
            reset_job.cancel()
            try:
                await reset_job
            except asyncio.CancelledError:
                pass


app = FastAPI(
    title="FocusFlow API",
    description="Daily schedule tracker with an authoritative server-side timer",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(InvalidFormat)
async def invalid_format_handler(request, exc: InvalidFormat):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(NotFound)
async def not_found_handler(request, exc: NotFound):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


# Dependencies

def get_clock() -> Callable[[], datetime]:
    """Clock used for every timer transition (overridden in tests)."""
    return utc_now


def get_task_repository(db: Session = Depends(get_db), clock=Depends(get_clock)) -> TaskRepository:
    return TaskRepository(db, clock=clock)


def get_timer_repository(db: Session = Depends(get_db), clock=Depends(get_clock)) -> TimerRepository:
    return TimerRepository(db, clock=clock)


def get_subtask_repository(db: Session = Depends(get_db), clock=Depends(get_clock)) -> SubtaskRepository:
    return SubtaskRepository(db, clock=clock)


def get_schedule_generator() -> OpenAIScheduleGenerator:
    return OpenAIScheduleGenerator()


def _day(date: Optional[str]) -> str:
    if date is None:
        return today_local_iso()
    parse_day(date)
    return date


# Request models

class TaskCreateRequest(BaseModel):
    date: Optional[str] = Field(None, description="Day (YYYY-MM-DD), defaults to today")
    title: str
    schedule: Schedule = Field(default_factory=TimelessSchedule)
    icon: Optional[str] = None
    color: Optional[str] = None
    subtasks: List[str] = Field(default_factory=list)


class TaskUpdateRequest(BaseModel):
    title: Optional[str] = None
    schedule: Optional[Schedule] = None
    icon: Optional[str] = None
    color: Optional[str] = None


class DayReplaceRequest(BaseModel):
    tasks: List[TaskDescriptor]


class ManualStatusRequest(BaseModel):
    status: Optional[ManualStatus] = Field(None, description="done, missed, or null to clear")


class SubtaskCreateRequest(BaseModel):
    text: str


class SubtaskUpdateRequest(BaseModel):
    text: Optional[str] = None
    completed: Optional[bool] = None


class DurationRequest(BaseModel):
    remaining_duration: int = Field(..., ge=0)


class BatchDurationRequest(BaseModel):
    updates: List[DurationUpdate]


class GenerateScheduleRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    date: Optional[str] = None
    replace: bool = Field(False, description="Replace the whole day instead of appending")


# Response models

class TaskResponse(BaseModel):
    task: Task


class TimerResponse(BaseModel):
    """Timer controls answer with the affected task, or null for a stale id."""
    task: Optional[Task]


class TaskListResponse(BaseModel):
    tasks: List[Task]
    count: int


class ChangesResponse(BaseModel):
    tasks: List[Task]
    count: int
    server_time: datetime = Field(..., description="Pass as `since` on the next call")


class SubtaskResponse(BaseModel):
    subtask: Subtask


class StatsResponse(CompletionStats):
    date: str


class SuggestionResponse(BaseModel):
    task: Task
    suggested_start: str
    suggested_end: str


class ResetResponse(BaseModel):
    reset_count: int


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


# Tasks

@app.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    request: TaskCreateRequest,
    current_user: User = Depends(get_current_user),
    repo: TaskRepository = Depends(get_task_repository),
):
    task = create_task_base(
        user_id=current_user.id,
        date=_day(request.date),
        title=request.title,
        schedule=request.schedule,
        icon=request.icon,
        color=request.color,
        subtasks=request.subtasks,
        now=repo.clock(),
    )
    return TaskResponse(task=repo.create(task))


@app.get("/tasks", response_model=TaskListResponse)
def list_tasks(
    date: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    repo: TaskRepository = Depends(get_task_repository),
):
    tasks = repo.list_for_day(current_user.id, _day(date))
    return TaskListResponse(tasks=tasks, count=len(tasks))


@app.get("/tasks/changes", response_model=ChangesResponse)
def list_task_changes(
    date: Optional[str] = Query(None),
    since: Optional[datetime] = Query(None, description="Naive UTC timestamp of the previous call"),
    current_user: User = Depends(get_current_user),
    repo: TaskRepository = Depends(get_task_repository),
):
    """Delta query: tasks of the day updated after `since` (all tasks when omitted)."""
    server_time = repo.clock()
    tasks = repo.list_changed_since(current_user.id, _day(date), since)
    return ChangesResponse(tasks=tasks, count=len(tasks), server_time=server_time)


@app.put("/tasks/day/{date}", response_model=TaskListResponse)
def replace_day(
    date: str,
    request: DayReplaceRequest,
    current_user: User = Depends(get_current_user),
    repo: TaskRepository = Depends(get_task_repository),
):
    """Replace every task of a day (timers start fresh)."""
    day = _day(date)
    tasks = [create_task_from_descriptor(current_user.id, day, d) for d in request.tasks]
    stored = repo.replace_day(current_user.id, day, with_suggestions(tasks))
    return TaskListResponse(tasks=stored, count=len(stored))


@app.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: str,
    current_user: User = Depends(get_current_user),
    repo: TaskRepository = Depends(get_task_repository),
):
    task = repo.get(current_user.id, task_id)
    if not task:
        raise NotFound(f"Task {task_id} not found")
    return TaskResponse(task=task)


@app.put("/tasks/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: str,
    request: TaskUpdateRequest,
    current_user: User = Depends(get_current_user),
    repo: TaskRepository = Depends(get_task_repository),
):
    task = repo.update_details(
        current_user.id,
        task_id,
        title=request.title,
        schedule=request.schedule,
        icon=request.icon,
        color=request.color,
    )
    if not task:
        raise NotFound(f"Task {task_id} not found")
    return TaskResponse(task=task)


@app.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: str,
    current_user: User = Depends(get_current_user),
    repo: TaskRepository = Depends(get_task_repository),
):
    if not repo.delete(current_user.id, task_id):
        raise NotFound(f"Task {task_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.put("/tasks/{task_id}/status", response_model=TaskResponse)
def set_task_status(
    task_id: str,
    request: ManualStatusRequest,
    current_user: User = Depends(get_current_user),
    repo: TaskRepository = Depends(get_task_repository),
):
    task = repo.set_manual_status(current_user.id, task_id, request.status)
    if not task:
        raise NotFound(f"Task {task_id} not found")
    return TaskResponse(task=task)


# Subtasks

@app.post("/tasks/{task_id}/subtasks", response_model=SubtaskResponse, status_code=status.HTTP_201_CREATED)
def create_subtask(
    task_id: str,
    request: SubtaskCreateRequest,
    current_user: User = Depends(get_current_user),
    repo: SubtaskRepository = Depends(get_subtask_repository),
):
    subtask = repo.create(current_user.id, task_id, request.text)
    if not subtask:
        raise NotFound(f"Task {task_id} not found")
    return SubtaskResponse(subtask=subtask)


@app.put("/subtasks/{subtask_id}", response_model=SubtaskResponse)
def update_subtask(
    subtask_id: str,
    request: SubtaskUpdateRequest,
    current_user: User = Depends(get_current_user),
    repo: SubtaskRepository = Depends(get_subtask_repository),
):
    subtask = repo.update(current_user.id, subtask_id, text=request.text, completed=request.completed)
    if not subtask:
        raise NotFound(f"Subtask {subtask_id} not found")
    return SubtaskResponse(subtask=subtask)


@app.post("/subtasks/{subtask_id}/toggle", response_model=SubtaskResponse)
def toggle_subtask(
    subtask_id: str,
    current_user: User = Depends(get_current_user),
    repo: SubtaskRepository = Depends(get_subtask_repository),
):
    subtask = repo.toggle(current_user.id, subtask_id)
    if not subtask:
        raise NotFound(f"Subtask {subtask_id} not found")
    return SubtaskResponse(subtask=subtask)


@app.delete("/subtasks/{subtask_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_subtask(
    subtask_id: str,
    current_user: User = Depends(get_current_user),
    repo: SubtaskRepository = Depends(get_subtask_repository),
):
    if not repo.delete(current_user.id, subtask_id):
        raise NotFound(f"Subtask {subtask_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Timer

@app.get("/timer/running", response_model=TimerResponse)
def get_running_timer(
    date: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    timers: TimerRepository = Depends(get_timer_repository),
):
    return TimerResponse(task=timers.get_running_timer(current_user.id, _day(date)))


@app.post("/timer/{task_id}/start", response_model=TimerResponse)
def start_timer(
    task_id: str,
    date: Optional[str] = Query(None, description="Day whose running timer is replaced; must be the task's day, defaults to it"),
    current_user: User = Depends(get_current_user),
    tasks: TaskRepository = Depends(get_task_repository),
    timers: TimerRepository = Depends(get_timer_repository),
):
    if date is None:
        task = tasks.get(current_user.id, task_id)
        if task is None:
            return TimerResponse(task=None)
        date = task.date
    return TimerResponse(task=timers.start_timer(current_user.id, _day(date), task_id))


@app.post("/timer/{task_id}/stop", response_model=TimerResponse)
def stop_timer(
    task_id: str,
    current_user: User = Depends(get_current_user),
    timers: TimerRepository = Depends(get_timer_repository),
):
    return TimerResponse(task=timers.stop_timer(current_user.id, task_id))


@app.post("/timer/{task_id}/pause", response_model=TimerResponse)
def pause_timer(
    task_id: str,
    current_user: User = Depends(get_current_user),
    timers: TimerRepository = Depends(get_timer_repository),
):
    return TimerResponse(task=timers.pause_timer(current_user.id, task_id))


@app.post("/timer/{task_id}/resume", response_model=TimerResponse)
def resume_timer(
    task_id: str,
    current_user: User = Depends(get_current_user),
    timers: TimerRepository = Depends(get_timer_repository),
):
    return TimerResponse(task=timers.resume_timer(current_user.id, task_id))


@app.put("/timer/{task_id}/duration", response_model=TimerResponse)
def update_timer_duration(
    task_id: str,
    request: DurationRequest,
    current_user: User = Depends(get_current_user),
    timers: TimerRepository = Depends(get_timer_repository),
):
    return TimerResponse(task=timers.update_timer_duration(current_user.id, task_id, request.remaining_duration))


@app.post("/timer/durations", response_model=BatchUpdateResult)
def batch_update_durations(
    request: BatchDurationRequest,
    current_user: User = Depends(get_current_user),
    timers: TimerRepository = Depends(get_timer_repository),
):
    return timers.batch_update_durations(current_user.id, request.updates)


# Stats

@app.get("/stats", response_model=StatsResponse)
def get_stats(
    date: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    repo: TaskRepository = Depends(get_task_repository),
):
    day = _day(date)
    stats = completion_stats(repo.list_for_day(current_user.id, day))
    return StatsResponse(date=day, **stats.model_dump())


# Schedule generation

@app.post("/schedule/generate", response_model=TaskListResponse, status_code=status.HTTP_201_CREATED)
def generate_schedule(
    request: GenerateScheduleRequest,
    current_user: User = Depends(get_current_user),
    repo: TaskRepository = Depends(get_task_repository),
    generator: OpenAIScheduleGenerator = Depends(get_schedule_generator),
):
    """Create tasks from a free-text prompt. Returns only the tasks created."""
    if not generator.available:
        raise HTTPException(status_code=503, detail="AI schedule generation is not configured")
    day = _day(request.date)
    descriptors = generator.generate(request.prompt)
    new_tasks = [create_task_from_descriptor(current_user.id, day, d) for d in descriptors]

    if request.replace:
        stored = repo.replace_day(current_user.id, day, with_suggestions(new_tasks))
        return TaskListResponse(tasks=stored, count=len(stored))

    existing = repo.list_for_day(current_user.id, day)
    new_ids = {t.id for t in new_tasks}
    placed = [t for t in with_suggestions(existing + new_tasks) if t.id in new_ids]
    created = [repo.create(task) for task in placed]
    return TaskListResponse(tasks=created, count=len(created))


@app.post("/schedule/suggest/{task_id}", response_model=SuggestionResponse)
def suggest_task_window(
    task_id: str,
    current_user: User = Depends(get_current_user),
    repo: TaskRepository = Depends(get_task_repository),
):
    """Suggest (and store) a start/end window for a flexible task."""
    task = repo.get(current_user.id, task_id)
    if not task:
        raise NotFound(f"Task {task_id} not found")
    if not isinstance(task.schedule, FlexibleSchedule):
        raise InvalidFormat("Only flexible tasks can be suggested a window")
    window = suggest_flexible_task_times(task.schedule, repo.list_for_day(current_user.id, task.date))
    updated = repo.set_suggested_window(current_user.id, task_id, window.start, window.end)
    if updated is None:
        raise NotFound(f"Task {task_id} not found")
    return SuggestionResponse(task=updated, suggested_start=window.start, suggested_end=window.end)


# Maintenance

@app.post("/maintenance/daily-reset", response_model=ResetResponse)
def trigger_daily_reset(
    date: Optional[str] = Query(None, description="Day to reset, defaults to today"),
    current_user: User = Depends(get_current_user),
    repo: TaskRepository = Depends(get_task_repository),
):
    """Run the day-boundary sweep now for the current user."""
    return ResetResponse(reset_count=repo.reset_daily(_day(date), user_id=current_user.id))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
