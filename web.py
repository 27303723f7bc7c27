import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Literal, Optional

from aiogram import Bot
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import BOT_TOKEN, CRON_SECRET, LOG_LEVEL
from database import Store, StoreError, init_db
from services.completions import CompletionService
from services.habits import HabitService
from services.reminders import ReminderDispatcher
from services.stats import StatsService
from services.users import CREATED, UserService
from utils.dates import parse_day

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.store = await Store.connect()
    await init_db(app.state.store)
    app.state.bot = Bot(token=BOT_TOKEN) if BOT_TOKEN else None
    yield
    await app.state.store.close()
    if app.state.bot:
        await app.state.bot.session.close()


app = FastAPI(title="HabitFlow API", lifespan=lifespan)

# CORS — required for the Mini App
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error("Store error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


# ======================
# DEPENDENCIES
# ======================

def get_store(request: Request):
    return request.app.state.store


def get_bot(request: Request):
    bot = getattr(request.app.state, "bot", None)
    if bot is None:
        raise HTTPException(status_code=500, detail="BOT_TOKEN is not set")
    return bot


def caller_id(x_telegram_id: Optional[str] = Header(None)) -> int:
    if not x_telegram_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        return int(x_telegram_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Unauthorized")


def require_cron_secret(authorization: Optional[str] = Header(None)):
    if not CRON_SECRET:
        raise HTTPException(status_code=500, detail="CRON_SECRET is not set")
    if authorization != f"Bearer {CRON_SECRET}":
        raise HTTPException(status_code=401, detail="Unauthorized")


def day_or_400(value):
    try:
        return parse_day(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date {value!r}")


# ======================
# MODELS
# ======================

class RegisterReq(BaseModel):
    telegram_id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    language_code: Optional[str] = None
    timezone: Optional[str] = None
    start_param: Optional[str] = None


class BotStartedReq(BaseModel):
    telegram_id: int


class HabitFields(BaseModel):
    category: Optional[str] = None
    priority: Literal["high", "medium", "low"] = "medium"
    color: Optional[str] = None
    icon: Optional[str] = None
    reminder_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    reminder_date: Optional[date] = None
    reminder_days: Optional[List[str]] = None


class HabitCreateReq(HabitFields):
    title: str = Field(min_length=1)


class HabitUpdateReq(HabitFields):
    id: Optional[int] = None
    title: Optional[str] = Field(None, min_length=1)
    is_archived: Optional[bool] = None


class ToggleReq(BaseModel):
    habitId: Optional[int] = None
    date: Optional[str] = None
    isCompleted: bool = True
    note: Optional[str] = None


class NoteReq(BaseModel):
    completionId: Optional[int] = None
    note: Optional[str] = None


# ======================
# ROUTES
# ======================

@app.get("/")
async def index():
    return {"status": "ok", "service": "HabitFlow API"}


@app.post("/api/register")
async def register(req: RegisterReq, store=Depends(get_store)):
    outcome = await UserService(store).register(**req.model_dump())
    message = "User created" if outcome == CREATED else "User updated"
    return {"status": "ok", "message": message}


@app.get("/api/user")
async def get_user(user_id: int = Depends(caller_id), store=Depends(get_store)):
    return await UserService(store).get(user_id)


@app.get("/api/check-bot-status")
async def check_bot_status(id: Optional[int] = None, store=Depends(get_store)):
    if id is None:
        raise HTTPException(status_code=400, detail="Missing id parameter")
    try:
        enabled = await UserService(store).notifications_enabled(id)
    except StoreError:
        logger.exception("Bot status lookup failed for %s", id)
        enabled = False
    return {"enabled": enabled}


@app.post("/api/mark-bot-started")
async def mark_bot_started(req: BotStartedReq, store=Depends(get_store)):
    await UserService(store).enable_notifications(req.telegram_id)
    return {"success": True}


@app.get("/api/habits")
async def list_habits(
    date: Optional[str] = None,
    user_id: int = Depends(caller_id),
    store=Depends(get_store),
):
    today = await UserService(store).today(user_id)
    day = day_or_400(date) if date else today
    return await HabitService(store).for_date(user_id, day, today)


@app.post("/api/habits")
async def create_habit(
    req: HabitCreateReq,
    user_id: int = Depends(caller_id),
    store=Depends(get_store),
):
    return await HabitService(store).create(user_id, req.model_dump())


@app.patch("/api/habits")
async def update_habit(
    req: HabitUpdateReq,
    user_id: int = Depends(caller_id),
    store=Depends(get_store),
):
    if req.id is None:
        raise HTTPException(status_code=400, detail="Missing id")
    fields = req.model_dump(exclude_unset=True, exclude={"id"})
    if not await HabitService(store).update(user_id, req.id, fields):
        raise HTTPException(status_code=404, detail="Habit not found")
    return {"success": True}


@app.delete("/api/habits")
async def delete_habit(
    id: Optional[int] = None,
    user_id: int = Depends(caller_id),
    store=Depends(get_store),
):
    if id is None:
        raise HTTPException(status_code=400, detail="Missing id")
    if not await HabitService(store).delete(user_id, id):
        raise HTTPException(status_code=404, detail="Habit not found")
    return {"success": True}


@app.post("/api/completion")
async def toggle_completion(
    req: ToggleReq,
    user_id: int = Depends(caller_id),
    store=Depends(get_store),
):
    if req.habitId is None:
        return JSONResponse(status_code=400, content={"success": False, "error": "Missing habitId"})
    day = day_or_400(req.date) if req.date else None

    result = await CompletionService(store).toggle(req.habitId, user_id, day, req.isCompleted, req.note)
    return JSONResponse(status_code=200 if result.success else 500, content=result.to_dict())


@app.patch("/api/completion")
async def update_note(
    req: NoteReq,
    user_id: int = Depends(caller_id),
    store=Depends(get_store),
):
    if req.completionId is None:
        raise HTTPException(status_code=400, detail="Missing completionId")
    if not await CompletionService(store).update_note(req.completionId, user_id, req.note):
        raise HTTPException(status_code=404, detail="Completion not found")
    return {"success": True}


@app.get("/api/completion")
async def completion_history(
    habitId: Optional[int] = None,
    user_id: int = Depends(caller_id),
    store=Depends(get_store),
):
    if habitId is None:
        raise HTTPException(status_code=400, detail="Missing habitId")
    return await CompletionService(store).history(habitId, user_id)


@app.get("/api/stats")
async def stats(
    type: Optional[str] = None,
    user_id: int = Depends(caller_id),
    store=Depends(get_store),
):
    service = StatsService(store)
    if type == "rpg":
        return await service.radar(user_id)
    if type in ("weekly", "heatmap"):
        today = await UserService(store).today(user_id)
        if type == "weekly":
            return await service.weekly(user_id, today)
        return await service.heatmap(user_id, today)
    raise HTTPException(status_code=400, detail="Invalid type")


@app.api_route("/api/cron", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
async def cron(store=Depends(get_store), bot=Depends(get_bot)):
    result = await ReminderDispatcher(store, bot).dispatch()
    return {"ok": True, **result}
