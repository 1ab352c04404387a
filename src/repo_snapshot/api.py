import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.requests import Request
from fastapi.responses import JSONResponse

from repo_snapshot import core, github, models

logger = logging.getLogger(__name__)


app = FastAPI(title="GitHub Repository Analyzer")

# Quota is tracked per process, across analyses
rate_limit = github.RateLimitState()


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=models.ErrorResponse(message=message).model_dump(),
    )


@app.exception_handler(github.GitHubError)
async def github_error_handler(request: Request, exc: github.GitHubError) -> JSONResponse:
    logger.error(f"GitHub error: {exc}")
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = "; ".join(
        f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}" for e in exc.errors()
    )
    return _error_response(422, messages)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error")
    return _error_response(500, "Internal server error")


@app.get("/")
async def root():
    return {
        "service": "GitHub Repository Analyzer",
        "usage": "POST /analyze with {\"repo_url\": \"https://github.com/owner/repo\"}",
        "docs": "/docs",
    }


@app.get("/rate-limit", response_model=models.RateLimitInfo)
async def rate_limit_info() -> models.RateLimitInfo:
    return rate_limit.snapshot()


@app.post(
    "/analyze",
    response_model=models.RepositoryData,
)
async def analyze(request: models.AnalyzeRequest) -> models.RepositoryData:
    return await core.analyze_repository(request.repo_url, rate_limit=rate_limit)
