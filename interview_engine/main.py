import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from interview_engine.api.v1 import interviews, questions, submissions
from interview_engine.core.config import Settings, settings as default_settings
from interview_engine.core.database import Database
from interview_engine.core.errors import EngineError
from interview_engine.core.logging import configure_logging
from interview_engine.services.bulk_assignment import BulkAssignmentOrchestrator
from interview_engine.services.executor import CodeExecutor, Judge0Executor
from interview_engine.services.grader import SubmissionGrader
from interview_engine.services.interview_service import RecruiterLocks

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    executor: Optional[CodeExecutor] = None,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = database or Database(settings.DATABASE_URL)
        db.open()
        db.create_all()
        app.state.database = db

        app.state.grader = SubmissionGrader(
            executor=executor
            or Judge0Executor(
                settings.EXECUTOR_BASE_URL,
                poll_interval=settings.EXECUTOR_POLL_INTERVAL_SEC,
                max_poll_attempts=settings.EXECUTOR_POLL_MAX_ATTEMPTS,
            ),
            max_workers=settings.GRADER_MAX_WORKERS,
            dispatch_timeout=settings.EXECUTOR_DISPATCH_TIMEOUT_SEC,
            time_limit=settings.EXECUTOR_TIME_LIMIT_SEC,
        )
        app.state.recruiter_locks = RecruiterLocks()
        app.state.orchestrator = BulkAssignmentOrchestrator(
            locks=app.state.recruiter_locks,
            default_policy=settings.BULK_DEFAULT_POLICY,
            coding_plan=settings.CODING_TIER_PLAN,
        )
        logger.info("Engine started", extra={"database": db.engine.url.render_as_string()})
        try:
            yield
        finally:
            db.close()
            logger.info("Engine stopped")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Interview scheduling, question assignment and code grading",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError):
        if exc.retryable:
            logger.error("Retryable failure", extra={"path": request.url.path, "error": exc.code})
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Health check
    @app.get("/health", tags=["Health"])
    async def health_check():
        return {"status": "ok"}

    # API Routers
    app.include_router(interviews.router, prefix=settings.API_V1_PREFIX, tags=["Interviews"])
    app.include_router(questions.router, prefix=settings.API_V1_PREFIX, tags=["Questions"])
    app.include_router(submissions.router, prefix=settings.API_V1_PREFIX, tags=["Submissions"])

    return app


app = create_app()
