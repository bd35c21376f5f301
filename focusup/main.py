from fastapi import FastAPI, Depends, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging
import os
from pathlib import Path
from typing import List

from focusup.database import engine, Base, SessionLocal
from focusup import models  # Import all models to register them with Base
from focusup.auth import verify_api_key
from focusup.constants import (
    DEFAULT_LOG_DIRECTORY_PROD, DEFAULT_LOG_DIRECTORY_DEV, CORS_ALLOWED_ORIGINS
)
from focusup.domain import TaskPriority
from focusup.exceptions import LevelUpNotAllowedException, PersistenceException, ValidationException
from focusup.schemas import (
    RewardContext, RewardResult, LevelUpCheck,
    DurationsUpdate, LinkUpdate, SprintResponse, SessionStateResponse,
    HabitCompletionRequest, TaskCompletionRequest, TaskCompletionResponse,
    UserStatsResponse, LevelStatusResponse, StreakUpdate, SprintRecordResponse
)
from focusup.services import reward_engine
from focusup.services.persistence import SqlPersistence
from focusup.services.session_controller import SessionController
from focusup.services.session_registry import SessionRegistry
from focusup.services.timers import SchedulerTimers

LOG_DIR = os.getenv("FOCUSUP_LOG_DIR", DEFAULT_LOG_DIRECTORY_PROD)
LOG_FILE = os.getenv("FOCUSUP_LOG_FILE", "focusup.log")

# Create log directory if it doesn't exist (for development)
try:
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE
except PermissionError:
    # Fallback to local directory if no permissions for /var/log
    LOG_DIR = DEFAULT_LOG_DIRECTORY_DEV
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(log_path),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger("focusup")

scheduler = AsyncIOScheduler()
registry = SessionRegistry(SqlPersistence(SessionLocal), SchedulerTimers(scheduler))


def get_registry() -> SessionRegistry:
    return registry


app = FastAPI(
    title="FocusUp Session API",
    description="Pomodoro focus sessions with XP, coins and anti-cheat rewards",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def startup_event():
    Base.metadata.create_all(bind=engine)
    if not scheduler.running:
        scheduler.start()
    logger.info(f"FocusUp API started. Logging to: {log_path}")

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down FocusUp API")
    registry.shutdown()
    if scheduler.running:
        scheduler.shutdown()

# Health check (no auth required)
@app.get("/")
async def root():
    return {"message": "FocusUp Session API", "status": "active"}


def _state_response(controller: SessionController) -> SessionStateResponse:
    snapshot = controller.sprint_snapshot
    return SessionStateResponse(
        phase=controller.phase,
        running_state=controller.running_state,
        seconds_left=controller.seconds_left,
        display=controller.display,
        work_seconds=controller.work_seconds,
        break_seconds=controller.break_seconds,
        verification_pending=controller.verification_pending,
        sprint=SprintResponse.model_validate(snapshot) if snapshot else SprintResponse(),
    )

# Session endpoints
@app.get("/api/session/{user_id}", response_model=SessionStateResponse, dependencies=[Depends(verify_api_key)])
async def get_session(user_id: str, reg: SessionRegistry = Depends(get_registry)):
    """Get current session state (recomputed from the wall clock)"""
    controller = reg.get(user_id)
    controller.tick()
    return _state_response(controller)

@app.post("/api/session/{user_id}/start", response_model=SessionStateResponse, dependencies=[Depends(verify_api_key)])
async def start_session(user_id: str, reg: SessionRegistry = Depends(get_registry)):
    """Start a new sprint or resume a paused phase"""
    controller = reg.get(user_id)
    controller.start(user_id)
    return _state_response(controller)

@app.post("/api/session/{user_id}/pause", response_model=SessionStateResponse, dependencies=[Depends(verify_api_key)])
async def pause_session(user_id: str, reg: SessionRegistry = Depends(get_registry)):
    controller = reg.get(user_id)
    controller.pause()
    return _state_response(controller)

@app.post("/api/session/{user_id}/reset", response_model=SessionStateResponse, dependencies=[Depends(verify_api_key)])
async def reset_session(user_id: str, reg: SessionRegistry = Depends(get_registry)):
    """Abandon the current sprint"""
    controller = reg.get(user_id)
    controller.reset()
    return _state_response(controller)

@app.post("/api/session/{user_id}/break", response_model=SessionStateResponse, dependencies=[Depends(verify_api_key)])
async def start_break(user_id: str, reg: SessionRegistry = Depends(get_registry)):
    """Start the break after a completed focus phase"""
    controller = reg.get(user_id)
    controller.start_break()
    return _state_response(controller)

@app.put("/api/session/{user_id}/durations", response_model=SessionStateResponse, dependencies=[Depends(verify_api_key)])
async def set_durations(user_id: str, durations: DurationsUpdate, reg: SessionRegistry = Depends(get_registry)):
    controller = reg.get(user_id)
    try:
        controller.set_durations(durations.work_seconds, durations.break_seconds)
    except ValidationException as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _state_response(controller)

@app.put("/api/session/{user_id}/link", response_model=SessionStateResponse, dependencies=[Depends(verify_api_key)])
async def set_link(user_id: str, link: LinkUpdate, reg: SessionRegistry = Depends(get_registry)):
    """Link the sprint to one task or one habit (empty body clears the link)"""
    if link.task_id and link.habit_id:
        raise HTTPException(status_code=400, detail="Link either a task or a habit, not both")
    controller = reg.get(user_id)
    if link.habit_id:
        controller.set_link_habit(link.habit_id)
    else:
        controller.set_link_task(link.task_id)
    return _state_response(controller)

@app.post("/api/session/{user_id}/verification/confirm", dependencies=[Depends(verify_api_key)])
async def confirm_verification(user_id: str, reg: SessionRegistry = Depends(get_registry)):
    """Answer the pending attentiveness check"""
    controller = reg.get(user_id)
    return {"confirmed": controller.confirm_verification()}

@app.get("/api/session/{user_id}/last-sprint", dependencies=[Depends(verify_api_key)])
async def get_last_sprint(user_id: str, reg: SessionRegistry = Depends(get_registry)):
    """Get the most recent finished sprint and its reward"""
    completion = reg.last_completion(user_id)
    if not completion:
        raise HTTPException(status_code=404, detail="No completed sprint")
    return {
        "linked_task_id": completion.linked_task_id,
        "linked_habit_id": completion.linked_habit_id,
        "work_duration_sec": completion.work_duration_sec,
        "break_duration_sec": completion.break_duration_sec,
        "reward_eligible": completion.reward_eligible,
        "reward": completion.reward,
    }

# Reward previews (pure, no session required)
@app.post("/api/rewards/preview/habit", response_model=RewardResult, dependencies=[Depends(verify_api_key)])
async def preview_habit_reward(ctx: RewardContext):
    return reward_engine.habit_reward(ctx)

@app.post("/api/rewards/preview/task", response_model=RewardResult, dependencies=[Depends(verify_api_key)])
async def preview_task_reward(ctx: RewardContext, priority: TaskPriority = TaskPriority.MEDIUM):
    return reward_engine.task_reward(priority, ctx)

@app.post("/api/rewards/preview/sprint", response_model=RewardResult, dependencies=[Depends(verify_api_key)])
async def preview_sprint_reward(ctx: RewardContext):
    return reward_engine.sprint_reward(ctx)

# User rewards
def _in_focus(reg: SessionRegistry, user_id: str) -> bool:
    controller = reg.get(user_id)
    controller.tick()
    return controller.in_focus


def _stats_response(user_id: str, stats) -> UserStatsResponse:
    return UserStatsResponse(
        user_id=user_id,
        total_coins=stats.coins,
        attributes=stats.attributes,
        attribute_levels=reward_engine.attribute_levels(stats.attributes),
        character_level=reward_engine.character_level(stats.attributes, stats.coins),
        current_streak=stats.current_streak,
        longest_streak=stats.longest_streak,
        total_focus_time=stats.total_focus_time,
        total_sessions=stats.total_sessions,
        total_sprints=stats.total_sprints,
    )

@app.post("/api/users/{user_id}/habits/complete", response_model=RewardResult, dependencies=[Depends(verify_api_key)])
async def complete_habit(user_id: str, request: HabitCompletionRequest, reg: SessionRegistry = Depends(get_registry)):
    """Award XP for a completed habit (focus bonus only while a focus phase is running)"""
    return reg.reward_service.complete_habit(
        user_id, request.attribute, request.title, _in_focus(reg, user_id)
    )

@app.post("/api/users/{user_id}/tasks/complete", response_model=TaskCompletionResponse, dependencies=[Depends(verify_api_key)])
async def complete_task(user_id: str, request: TaskCompletionRequest, reg: SessionRegistry = Depends(get_registry)):
    """Award coins for a completed task (focus bonus only while a focus phase is running)"""
    return reg.reward_service.complete_task(
        user_id, request.priority, request.title, _in_focus(reg, user_id)
    )

@app.get("/api/users/{user_id}/stats", response_model=UserStatsResponse, dependencies=[Depends(verify_api_key)])
async def get_user_stats(user_id: str, reg: SessionRegistry = Depends(get_registry)):
    return _stats_response(user_id, reg.reward_service.get_stats(user_id))

@app.put("/api/users/{user_id}/streak", response_model=UserStatsResponse, dependencies=[Depends(verify_api_key)])
async def update_streak(user_id: str, update: StreakUpdate, reg: SessionRegistry = Depends(get_registry)):
    """Set the current streak; the longest streak keeps its maximum"""
    try:
        stats = reg.reward_service.update_streak(user_id, update.current_streak)
    except ValidationException as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _stats_response(user_id, stats)

@app.get("/api/users/{user_id}/sprints", response_model=List[SprintRecordResponse], dependencies=[Depends(verify_api_key)])
async def get_recent_sprints(
    user_id: str,
    limit: int = Query(10, ge=1, le=100),
    reg: SessionRegistry = Depends(get_registry)
):
    """Get the user's latest sprints, newest first"""
    try:
        sprints = reg.persistence.recent_sprint_records(user_id, limit)
    except PersistenceException as e:
        logger.error(f"Reading sprints for {user_id} failed: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Sprint history unavailable")
    return [SprintRecordResponse.model_validate(sprint) for sprint in sprints]

@app.get("/api/users/{user_id}/level", response_model=LevelStatusResponse, dependencies=[Depends(verify_api_key)])
async def get_level_status(user_id: str, reg: SessionRegistry = Depends(get_registry)):
    level, check = reg.reward_service.level_status(user_id)
    return LevelStatusResponse(character_level=level, check=check)

@app.post("/api/users/{user_id}/level-up", response_model=LevelUpCheck, dependencies=[Depends(verify_api_key)])
async def level_up(user_id: str, reg: SessionRegistry = Depends(get_registry)):
    """Pay the coin cost for the next character level"""
    try:
        return reg.reward_service.level_up(user_id)
    except LevelUpNotAllowedException as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.reason)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("focusup.main:app", host="0.0.0.0", port=8000, reload=False)
