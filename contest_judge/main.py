import logging
import sys

from fastapi import FastAPI, HTTPException, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .config import LOG_LEVEL
from .languages import LANGUAGES
from .models import init_db, get_session, Submission
from .processor import SubmissionProcessor
from .store import InvalidTransition, SubmissionNotFound

app = FastAPI(title="Contest Judge")

processor = SubmissionProcessor()


def setup_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=level,
        stream=sys.stdout,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.on_event("startup")
async def startup():
    await init_db()
    await processor.start()


@app.on_event("shutdown")
async def shutdown():
    await processor.stop()

# ===== Judge APIs =====

@app.post("/api/judge/{submission_id}", status_code=202)
async def judge(submission_id: int):
    """Queue an existing submission for judging"""
    try:
        await processor.enqueue(submission_id)
    except SubmissionNotFound:
        raise HTTPException(404, "Submission not found")
    except InvalidTransition as e:
        raise HTTPException(409, str(e))

    return {"submission_id": submission_id, "status": "QUEUED"}


@app.get("/api/submissions/{submission_id}")
async def get_submission(submission_id: int, session: AsyncSession = Depends(get_session)):
    """Get submission status and result"""
    submission = await session.get(Submission, submission_id)
    if not submission:
        raise HTTPException(404, "Submission not found")

    return {
        "id": submission.id,
        "problem_id": submission.problem_id,
        "language": submission.language,
        "status": submission.status,
        "score": submission.score,
        "execution_time": submission.execution_time,
        "memory_used": submission.memory_used,
        "message": submission.message,
        "created_at": submission.created_at.isoformat() if submission.created_at else None,
        "updated_at": submission.updated_at.isoformat() if submission.updated_at else None,
    }


@app.get("/api/judge/metrics")
async def get_metrics():
    return processor.metrics.snapshot()

# ===== Config APIs =====

@app.get("/api/languages")
async def get_languages():
    """Get supported languages and how they are executed"""
    return {
        language.value: {"kind": spec.kind.value, "source_file": spec.source_file}
        for language, spec in LANGUAGES.items()
    }


def run():
    import uvicorn
    setup_logging()
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
