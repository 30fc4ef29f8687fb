"""
FastAPI Backend for the Cosmos adaptive learning engine.

One learner, one progress snapshot. Every write endpoint follows the same
shape: `store.update` loads the snapshot, computes a new one and saves it
whole, one request at a time.

Endpoints:
    POST /answers                            - record an answered question
    GET  /recommendations                    - "3 things to do today"
    GET  /review-queue                       - topics due for review
    GET  /tags/weakest, /tags/unseen, /tags/grouped
    GET  /summary                            - dashboard numbers
    GET  /misconceptions                     - active misconceptions
    GET  /misconceptions/flags               - all flags, resolved included
    POST /misconceptions/{rule_id}/resolve   - learner acknowledged the fix
    POST /misconceptions/{rule_id}/reopen
    POST /lessons/{slug}/start, /lessons/{slug}/complete
    POST /quizzes/{quiz_id}/results
    POST /bookmarks/{date}
    GET  /progress, DELETE /progress
"""

import logging
import os
import sys
from dataclasses import replace
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

import redis
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from adaptive.config import AdaptiveConfig
from adaptive.engine import AdaptiveEngine
from adaptive.models import MasteryUpdateParams
from adaptive.selectors import progress_summary, tag_stats_grouped
from adaptive.tags import DIFFICULTY_LABELS, DIFFICULTY_MAP
from catalog import Catalog
from progress_store import (
    ProgressData,
    ProgressStore,
    complete_lesson,
    record_activity,
    save_quiz_result,
    start_lesson,
    toggle_bookmark,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ==================== Initialize ====================

app = FastAPI(
    title="Cosmos Adaptive API",
    description="Adaptive mastery engine for astronomy lessons and quizzes",
    version="4.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache()
def get_store() -> ProgressStore:
    return ProgressStore(engine=AdaptiveEngine(AdaptiveConfig.from_env()))


@lru_cache()
def get_catalog() -> Catalog:
    catalog_file = os.getenv("CATALOG_FILE")
    return Catalog.from_file(catalog_file) if catalog_file else Catalog()


def get_engine(store: ProgressStore = Depends(get_store)) -> AdaptiveEngine:
    return store.engine


@app.exception_handler(redis.RedisError)
async def redis_error_handler(request: Request, exc: redis.RedisError):
    logger.error("Progress store unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"detail": "Progress store unavailable"})


# ==================== Request/Response Models ====================

class AnswerRequest(BaseModel):
    question_id: str
    quiz_id: str
    tags: List[str] = Field(..., min_length=1)
    difficulty: int = Field(2, ge=1, le=3)
    is_correct: bool
    selected_answer_id: str
    correct_answer_id: str

    @field_validator("difficulty", mode="before")
    @classmethod
    def difficulty_from_level(cls, value):
        """Accept a lesson level name ("beginner", ...) as well as 1-3."""
        if isinstance(value, str):
            return DIFFICULTY_MAP.get(value, value)
        return value


class AnswerResponse(BaseModel):
    updated_tags: List[dict]
    attempt: dict
    active_misconceptions: List[dict]


class CompleteLessonRequest(BaseModel):
    quiz_score: Optional[float] = None


class QuizResultRequest(BaseModel):
    score: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=1)
    answers: Dict[str, str] = Field(default_factory=dict)


# ==================== Helper Functions ====================

def mastery_to_status(score: float) -> str:
    """Convert mastery score to status string for frontend."""
    if score >= 0.6:
        return "mastered"
    elif score < 0.4:
        return "failed"
    return "neutral"


def active_misconceptions_payload(engine: AdaptiveEngine, data: ProgressData) -> List[dict]:
    return [m.to_dict() for m in engine.active_misconceptions(data.adaptive)]


# ==================== Core Endpoints ====================

@app.get("/")
def root():
    return {
        "status": "ok",
        "message": "Cosmos Adaptive API is running",
        "version": app.version,
    }


@app.get("/progress")
def get_progress(store: ProgressStore = Depends(get_store)):
    """Full learner snapshot (for debugging/admin)."""
    return store.load().to_dict()


@app.delete("/progress")
def reset_progress(store: ProgressStore = Depends(get_store)):
    store.reset()
    return {"status": "deleted"}


@app.post("/answers", response_model=AnswerResponse)
def record_answer(request: AnswerRequest,
                  store: ProgressStore = Depends(get_store),
                  engine: AdaptiveEngine = Depends(get_engine)):
    """Update mastery after one answered question."""
    params = MasteryUpdateParams(
        question_id=request.question_id,
        quiz_id=request.quiz_id,
        tags=request.tags,
        difficulty=request.difficulty,
        is_correct=request.is_correct,
        selected_answer_id=request.selected_answer_id,
        correct_answer_id=request.correct_answer_id,
    )
    outcome = {}

    def apply(data: ProgressData) -> ProgressData:
        adaptive, outcome["result"] = engine.update_mastery(data.adaptive, params)
        return record_activity(replace(data, adaptive=adaptive))

    data = store.update(apply)
    result = outcome["result"]

    return AnswerResponse(
        updated_tags=[
            {**t.to_dict(), "status": mastery_to_status(t.new_mastery)}
            for t in result.updated_tags
        ],
        attempt={**result.new_attempt.to_dict(), "difficultyLabel": DIFFICULTY_LABELS[request.difficulty]},
        active_misconceptions=active_misconceptions_payload(engine, data),
    )


@app.get("/recommendations")
def get_recommendations(store: ProgressStore = Depends(get_store),
                        engine: AdaptiveEngine = Depends(get_engine),
                        catalog: Catalog = Depends(get_catalog)):
    """Cached recommendations, regenerated only when the cache is invalid."""
    def apply(data: ProgressData) -> ProgressData:
        adaptive, _ = engine.get_recommendations(
            data.adaptive, catalog.lessons, catalog.quizzes, data.lessons_progress
        )
        # Cache hit returns the same state, so nothing is written
        return data if adaptive is data.adaptive else replace(data, adaptive=adaptive)

    data = store.update(apply)
    return data.adaptive.recommendations.to_dict()


@app.get("/review-queue")
def get_review_queue(store: ProgressStore = Depends(get_store),
                     engine: AdaptiveEngine = Depends(get_engine)):
    data = store.load()
    return [item.to_dict() for item in engine.review_queue(data.adaptive)]


@app.get("/tags/weakest")
def get_weakest_tags(limit: Optional[int] = None,
                     store: ProgressStore = Depends(get_store),
                     engine: AdaptiveEngine = Depends(get_engine)):
    data = store.load()
    return [stat.to_dict() for stat in engine.weakest_tags(data.adaptive, limit)]


@app.get("/tags/unseen")
def get_unseen_tags(store: ProgressStore = Depends(get_store),
                    engine: AdaptiveEngine = Depends(get_engine)):
    return engine.unseen_tags(store.load().adaptive)


@app.get("/tags/grouped")
def get_grouped_tags(store: ProgressStore = Depends(get_store)):
    grouped = tag_stats_grouped(store.load().adaptive.tag_stats)
    return {
        group_id: {"label": group["label"], "stats": [s.to_dict() for s in group["stats"]]}
        for group_id, group in grouped.items()
    }


@app.get("/summary")
def get_summary(store: ProgressStore = Depends(get_store),
                engine: AdaptiveEngine = Depends(get_engine)):
    adaptive = store.load().adaptive
    return progress_summary(
        adaptive.tag_stats,
        adaptive.question_history,
        adaptive.misconceptions,
        detector=engine.detector,
        scheduler=engine.scheduler,
    )


# ==================== Misconceptions ====================

@app.get("/misconceptions")
def get_misconceptions(store: ProgressStore = Depends(get_store),
                       engine: AdaptiveEngine = Depends(get_engine)):
    return active_misconceptions_payload(engine, store.load())


@app.get("/misconceptions/flags")
def get_misconception_flags(store: ProgressStore = Depends(get_store),
                            engine: AdaptiveEngine = Depends(get_engine)):
    """Every recorded flag, resolved ones included (diagnostics view)."""
    flags = store.load().adaptive.misconceptions
    return [
        {**flag.to_dict(), "title": rule.title, "relatedTags": list(rule.related_tags)}
        for flag, rule in engine.detector.with_rules(flags)
    ]


@app.post("/misconceptions/{rule_id}/resolve")
def resolve_misconception(rule_id: str,
                          store: ProgressStore = Depends(get_store),
                          engine: AdaptiveEngine = Depends(get_engine)):
    """Learner acknowledged the misconception as fixed. Idempotent."""
    data = store.update(
        lambda d: replace(d, adaptive=engine.resolve_misconception(d.adaptive, rule_id))
    )
    return {"rule_id": rule_id, "active": active_misconceptions_payload(engine, data)}


@app.post("/misconceptions/{rule_id}/reopen")
def reopen_misconception(rule_id: str,
                         store: ProgressStore = Depends(get_store),
                         engine: AdaptiveEngine = Depends(get_engine)):
    store.update(lambda d: replace(d, adaptive=engine.reopen_misconception(d.adaptive, rule_id)))
    return {"rule_id": rule_id, "status": "reopened"}


# ==================== Lessons, quizzes, bookmarks ====================

@app.post("/lessons/{slug}/start")
def start_lesson_endpoint(slug: str,
                          store: ProgressStore = Depends(get_store),
                          catalog: Catalog = Depends(get_catalog)):
    if catalog.get_lesson(slug) is None:
        raise HTTPException(status_code=404, detail="Lesson not found")
    data = store.update(lambda d: start_lesson(d, slug))
    return data.lessons_progress[slug].to_dict()


@app.post("/lessons/{slug}/complete")
def complete_lesson_endpoint(slug: str, request: CompleteLessonRequest,
                             store: ProgressStore = Depends(get_store),
                             catalog: Catalog = Depends(get_catalog)):
    if catalog.get_lesson(slug) is None:
        raise HTTPException(status_code=404, detail="Lesson not found")
    data = store.update(lambda d: complete_lesson(d, slug, request.quiz_score))
    return data.lessons_progress[slug].to_dict()


@app.post("/quizzes/{quiz_id}/results")
def save_quiz_result_endpoint(quiz_id: str, request: QuizResultRequest,
                              store: ProgressStore = Depends(get_store),
                              catalog: Catalog = Depends(get_catalog)):
    if catalog.get_quiz(quiz_id) is None:
        raise HTTPException(status_code=404, detail="Quiz not found")
    data = store.update(
        lambda d: save_quiz_result(d, quiz_id, request.score, request.total_questions, request.answers)
    )
    return data.quiz_results[-1]


@app.post("/bookmarks/{apod_date}")
def toggle_bookmark_endpoint(apod_date: str, store: ProgressStore = Depends(get_store)):
    data = store.update(lambda d: toggle_bookmark(d, apod_date))
    return {"date": apod_date, "bookmarked": apod_date in data.bookmarks}


# ==================== Run Server ====================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.main:app", host="0.0.0.0", port=8000, reload=True)
