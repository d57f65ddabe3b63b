import logging
import os
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .db import Base, engine, get_db
from .errors import DrawError
from .ledger import get_attempt, spin_history
from .logging_setup import configure_logging
from .lucky_draw import Win, award_status, claim, spin, user_awards, user_stats
from .models import Reward, User, UserReward
from .schemas import SpinResponse, ClaimRequest, ClaimResponse, AwardOut, RewardPublic
from .schemas import RemainingSpinsResponse, SpinAttemptOut, UserStatsResponse
from .schemas import AdminLoginRequest, AdminLoginResponse
from .schemas import RewardAdminOut, RewardsSetRequest, RewardsSetResponse
from .security import get_current_user, make_admin_token, require_admin, verify_admin_password
from .utils import as_utc, reference_day, utcnow

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    # Dev convenience: create tables if they don't exist
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="Events Rewards Lucky Draw API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_origin_regex=settings.allowed_origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DrawError)
async def draw_exc_handler(request: Request, exc: DrawError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "code": exc.code},
    )

@app.exception_handler(StarletteHTTPException)
async def http_exc_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail), "code": "HTTP_ERROR"})

@app.exception_handler(RequestValidationError)
async def validation_exc_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=422, content={"message": "Validation error", "code": "VALIDATION_ERROR", "errors": exc.errors()})


def award_out(award: UserReward, now=None) -> AwardOut:
    return AwardOut(
        id=award.id,
        reward_id=award.reward_id,
        claim_code=award.claim_code,
        status=award_status(award, now),
        created_at=as_utc(award.created_at),
        expires_at=as_utc(award.expires_at),
        claimed_at=as_utc(award.claimed_at),
        reward=RewardPublic.model_validate(award.reward),
    )


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/api/lucky-draw/spin", response_model=SpinResponse)
def spin_wheel(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    outcome = spin(db, user.id)
    remaining = max(settings.daily_spin_limit - outcome.attempts_used, 0)

    if isinstance(outcome, Win):
        award = outcome.award
        return SpinResponse(
            success=True,
            reward=RewardPublic.model_validate(outcome.reward),
            message=f"Congratulations! You won: {outcome.reward.name}",
            claim_code=award.claim_code,
            expires_at=as_utc(award.expires_at),
            user_reward=award_out(award),
            attempts_used=outcome.attempts_used,
            remaining_spins=remaining,
        )

    return SpinResponse(
        success=True,
        reward=RewardPublic.model_validate(outcome.reward),
        message="Better luck next time!",
        attempts_used=outcome.attempts_used,
        remaining_spins=remaining,
    )


@app.post("/api/lucky-draw/claim", response_model=ClaimResponse)
def claim_reward(payload: ClaimRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    award = claim(db, user.id, payload.claim_code.strip())
    return ClaimResponse(message="Reward claimed successfully", reward=award_out(award))


@app.get("/api/lucky-draw/rewards", response_model=List[RewardPublic])
def list_rewards(db: Session = Depends(get_db)):
    # weights and supply counters stay server-side
    return db.scalars(
        select(Reward)
        .where(Reward.active == True)
        .order_by(Reward.weight.desc(), Reward.id.asc())
    ).all()


@app.get("/api/lucky-draw/remaining-spins", response_model=RemainingSpinsResponse)
def remaining_spins(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    limit = settings.daily_spin_limit
    attempt = get_attempt(db, user.id, reference_day(utcnow(), settings.draw_timezone))
    used = attempt.attempts_count if attempt else 0
    remaining = max(limit - used, 0)
    return RemainingSpinsResponse(
        remaining_spins=remaining,
        total_daily_spins=limit,
        spins_used_today=used,
        last_spin=as_utc(attempt.last_attempt) if attempt else None,
        can_spin_today=remaining > 0,
    )


@app.get("/api/lucky-draw/history", response_model=List[SpinAttemptOut])
def history(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [
        SpinAttemptOut(
            attempt_date=row.attempt_date,
            attempts_count=row.attempts_count,
            last_attempt=as_utc(row.last_attempt),
        )
        for row in spin_history(db, user.id)
    ]


@app.get("/api/lucky-draw/stats", response_model=UserStatsResponse)
def stats(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return UserStatsResponse(**user_stats(db, user.id))


@app.get("/api/user/rewards", response_model=List[AwardOut])
def my_rewards(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    now = utcnow()
    return [award_out(a, now) for a in user_awards(db, user.id)]


# --- Admin ---
_failed: dict[str, list[float]] = {}
MAX_ATTEMPTS = 5
WINDOW_SEC = 15 * 60  # 15 minutes

def _now_s() -> float: return utcnow().timestamp()

def _rate_limit(ip: str):
    t = _now_s()
    arr = [x for x in _failed.get(ip, []) if t - x < WINDOW_SEC]
    _failed[ip] = arr
    if len(arr) >= MAX_ATTEMPTS:
        raise HTTPException(status_code=429, detail="Too many failed login attempts, try again later")

def _mark_fail(ip: str):
    _failed.setdefault(ip, []).append(_now_s())

def _clear_fail(ip: str):
    _failed.pop(ip, None)


@app.post("/api/admin/login", response_model=AdminLoginResponse)
def admin_login(body: AdminLoginRequest, request: Request):
    ip = request.client.host if request.client else "unknown"
    _rate_limit(ip)

    if not verify_admin_password(body.password):
        _mark_fail(ip)
        logger.warning("Failed admin login from %s", ip)
        raise HTTPException(status_code=401, detail="Wrong password")

    _clear_fail(ip)
    return AdminLoginResponse(token=make_admin_token())


@app.get("/api/admin/rewards", response_model=List[RewardAdminOut])
def admin_list_rewards(db: Session = Depends(get_db), _=Depends(require_admin)):
    return db.scalars(select(Reward).order_by(Reward.id.asc())).all()


@app.put("/api/admin/rewards", response_model=RewardsSetResponse)
def admin_set_rewards(payload: RewardsSetRequest, db: Session = Depends(get_db), _=Depends(require_admin)):
    incoming_by_id = {r.id: r for r in payload.rewards if r.id}
    incoming_new = [r for r in payload.rewards if not r.id]
    existing_by_id = {e.id: e for e in db.scalars(select(Reward)).all()}

    unknown = sorted(rid for rid in incoming_by_id if rid not in existing_by_id)
    if unknown:
        raise HTTPException(status_code=422, detail=f"Unknown reward id(s): {', '.join(map(str, unknown))}")

    # The pool left after the upsert must still be drawable
    def drawable(rin, claimed: int) -> bool:
        in_stock = rin.total_available is None or rin.total_available > claimed
        return rin.active and rin.weight > 0 and in_stock

    if not (
        any(drawable(rin, existing_by_id[rid].total_claimed) for rid, rin in incoming_by_id.items())
        or any(drawable(rin, 0) for rin in incoming_new)
    ):
        raise HTTPException(
            status_code=422,
            detail="At least one active reward with weight > 0 and supply left is required",
        )

    created = updated = 0

    for rid, rin in incoming_by_id.items():
        e = existing_by_id[rid]
        e.name = rin.name
        e.description = rin.description
        e.reward_type = rin.reward_type
        e.value = rin.value
        e.weight = rin.weight
        e.total_available = rin.total_available
        e.active = rin.active
        updated += 1

    for rin in incoming_new:
        db.add(Reward(
            name=rin.name,
            description=rin.description,
            reward_type=rin.reward_type,
            value=rin.value,
            weight=rin.weight,
            total_available=rin.total_available,
            active=rin.active,
            total_claimed=0,
        ))
        created += 1

    db.flush()

    # Soft remove: awards keep pointing at deactivated rewards
    deactivated = 0
    for e in existing_by_id.values():
        if e.id not in incoming_by_id and e.active:
            e.active = False
            deactivated += 1

    db.commit()
    logger.info("Reward pool updated: %d created, %d updated, %d deactivated", created, updated, deactivated)

    return RewardsSetResponse(
        ok=True,
        created=created,
        updated=updated,
        deactivated=deactivated,
        message=f"Saved. Created {created}, updated {updated}, deactivated {deactivated}.",
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8080)),
        reload=False,
    )
