#!/usr/bin/env python3
"""
Server for the Report Assistant.

Local API in front of the report backend and the AI provider: login, template
and report browsing, report submission, report synthesis and streamed text
actions.

Usage:
    uvicorn server:app --reload --port 8000
"""

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from datetime import datetime
from typing import Optional
from contextlib import aclosing
import logging
import httpx
import json

# Import all core functionality
from report_assistant import (
    HTTP_TIMEOUT,
    STATE_FILE,
    SUPPORTED_PROVIDERS,
    validate_config,
    ReportAssistantError,
    AuthenticationRequired,
    InvalidState,
    NotFound,
    CapabilityUnsupported,
    PreconditionFailed,
    CompletionCancelled,
    MalformedResponse,
    UpstreamHttpError,
    CanonicalReport,
    CanonicalTemplate,
    ReportFilter,
    ReportSubmission,
    SubmissionResult,
    JsonFileStore,
    CredentialStore,
    ReportCatalog,
    CompletionSettings,
    StreamingCompletionClient,
    ReportSynthesizer,
)
from report_assistant.completion import PROVIDERS, get_provider
from report_assistant.providers import ADAPTERS, CAPABILITIES
from report_assistant.prompts import AI_PROMPTS

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

# =============================================================================
# FASTAPI APP
# =============================================================================

app = FastAPI(
    title="Report Assistant",
    description="Collect DingTalk/Feishu reports and synthesise new ones with AI",
    version="1.0.0"
)

# Shared state, initialised on startup
_http_client: Optional[httpx.AsyncClient] = None
_storage: Optional[JsonFileStore] = None
_credentials: Optional[CredentialStore] = None
_catalog: Optional[ReportCatalog] = None

# Typed failure -> HTTP status (first match wins, subclasses first)
ERROR_STATUS = [
    (AuthenticationRequired, 401),
    (InvalidState, 400),
    (NotFound, 404),
    (CapabilityUnsupported, 501),
    (PreconditionFailed, 412),
    (CompletionCancelled, 409),
    (MalformedResponse, 502),
    (UpstreamHttpError, 502),
]


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    provider: Optional[str]
    logged_in: bool
    ai_configured: bool


class LoginResponse(BaseModel):
    auth_url: str


class SessionResponse(BaseModel):
    user_id: str
    display_name: str
    provider: str
    expires_at: int


class SummaryRequest(BaseModel):
    """Synthesise the target template from reports matching `filter`."""
    target_template_name: str
    filter: ReportFilter = ReportFilter()
    report_ids: Optional[list[str]] = None


class SummaryResponse(BaseModel):
    template: CanonicalTemplate
    source_count: int
    summary: dict[str, str]


class AssistRequest(BaseModel):
    action: str
    text: str


class AISettingsRequest(BaseModel):
    provider: str
    api_key: str
    model: str = ""


# =============================================================================
# HELPERS
# =============================================================================

def _require_ready() -> tuple[CredentialStore, ReportCatalog]:
    if _credentials is None or _catalog is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return _credentials, _catalog


def _completion_client() -> StreamingCompletionClient:
    # Settings are re-read so changes made through the CLI apply immediately
    return StreamingCompletionClient(CompletionSettings.load(_storage), http_client=_http_client)


@app.exception_handler(ReportAssistantError)
async def report_assistant_error_handler(request: Request, exc: ReportAssistantError):
    status = next((code for kind, code in ERROR_STATUS if isinstance(exc, kind)), 500)
    logger.warning(f"{request.method} {request.url.path} -> {status}: {exc}")
    return JSONResponse(status_code=status, content={"error": type(exc).__name__, "message": str(exc)})


# =============================================================================
# STARTUP / SHUTDOWN
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize on startup."""
    global _http_client, _storage, _credentials, _catalog

    is_valid, errors = validate_config()
    if not is_valid:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error(f"  - {error}")
        raise RuntimeError("Invalid configuration")

    _http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)
    _storage = JsonFileStore(STATE_FILE)
    _credentials = CredentialStore(_storage, _http_client)
    _catalog = ReportCatalog.from_registry(_credentials)

    logger.info(f"Server started, state file: {STATE_FILE}")
    if not _credentials.is_live():
        logger.warning("⚠️  No live session - log in via /api/v1/auth/{provider}/login")


@app.on_event("shutdown")
async def shutdown_event():
    if _http_client is not None:
        await _http_client.aclose()


# =============================================================================
# API ENDPOINTS
# =============================================================================

@app.get("/api/v1/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    credentials, catalog = _require_ready()
    return HealthResponse(
        status="healthy",
        provider=catalog.provider,
        logged_in=credentials.is_live(),
        ai_configured=CompletionSettings.load(_storage).api_key != "",
    )


@app.get("/api/v1/auth/{provider}/login", response_model=LoginResponse)
async def login(provider: str):
    """Start the OAuth handshake; the client must open `auth_url`."""
    credentials, _ = _require_ready()
    if provider not in SUPPORTED_PROVIDERS:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")
    return LoginResponse(auth_url=await credentials.begin_login(provider))


@app.get("/api/v1/auth/callback", response_model=SessionResponse)
async def auth_callback(request: Request):
    """OAuth redirect target: verifies state and exchanges the code."""
    credentials, _ = _require_ready()
    session = await credentials.handle_auth_callback(str(request.url))
    return SessionResponse(
        user_id=session.user.id,
        display_name=session.user.display_name,
        provider=session.user.provider,
        expires_at=session.expires_at,
    )


@app.post("/api/v1/auth/logout")
async def logout():
    credentials, _ = _require_ready()
    await credentials.logout()
    return {"status": "logged_out"}


@app.get("/api/v1/templates", response_model=list[CanonicalTemplate])
async def list_templates():
    _, catalog = _require_ready()
    return await catalog.list_templates()


@app.get("/api/v1/templates/detail", response_model=CanonicalTemplate)
async def template_detail(name: str):
    _, catalog = _require_ready()
    return await catalog.template_detail(name)


@app.get("/api/v1/reports", response_model=list[CanonicalReport])
async def list_reports(
    template_id: Optional[str] = None,
    template_name: Optional[str] = None,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
):
    _, catalog = _require_ready()
    return await catalog.list_reports(ReportFilter(
        template_id=template_id,
        template_name=template_name,
        start_time=start_time,
        end_time=end_time,
    ))


@app.post("/api/v1/reports", response_model=SubmissionResult)
async def submit_report(submission: ReportSubmission):
    _, catalog = _require_ready()
    return await catalog.submit_report(submission)


@app.post("/api/v1/summaries", response_model=SummaryResponse)
async def summarize(request: SummaryRequest):
    """
    Synthesise a report for the target template.

    Source reports are fetched with `filter`, optionally narrowed to
    `report_ids`. Fields the model fails on come back as manual-entry
    placeholders.
    """
    _, catalog = _require_ready()

    template = await catalog.template_detail(request.target_template_name)
    reports = await catalog.list_reports(request.filter)
    if request.report_ids is not None:
        wanted = set(request.report_ids)
        reports = [r for r in reports if r.id in wanted]

    async with _completion_client() as client:
        summary = await ReportSynthesizer(client).summarize_reports(reports, template)

    return SummaryResponse(template=template, source_count=len(reports), summary=summary)


@app.get("/api/v1/assist/actions")
async def list_actions():
    return {"actions": [{"name": name, "description": desc} for name, (_, desc) in AI_PROMPTS.items()]}


@app.post("/api/v1/assist")
async def assist(request: AssistRequest):
    """Stream a text action back as server-sent events."""
    if request.action not in AI_PROMPTS:
        raise HTTPException(status_code=404, detail=f"Unknown action: {request.action}")

    _require_ready()

    client = _completion_client()
    client.require_api_key()
    prompt, _ = AI_PROMPTS[request.action]

    async def events():
        try:
            async with aclosing(client.stream(prompt, request.text)) as fragments:
                async for fragment in fragments:
                    yield f"data: {json.dumps({'delta': fragment}, ensure_ascii=False)}\n\n"
        except (ReportAssistantError, httpx.HTTPError) as e:
            logger.error(f"Assist action '{request.action}' failed: {e}")
            yield f"data: {json.dumps({'error': str(e)}, ensure_ascii=False)}\n\n"
        yield "data: [DONE]\n\n"

    return StreamingResponse(events(), media_type="text/event-stream")


@app.put("/api/v1/settings/ai")
async def save_ai_settings(request: AISettingsRequest):
    _require_ready()
    settings = CompletionSettings(provider=request.provider, api_key=request.api_key, model=request.model)
    provider = get_provider(request.provider)
    settings.save(_storage)
    return {"provider": provider.name, "model": settings.model or provider.default_model}


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Report Assistant",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/v1/health",
        "providers": {
            name: {
                "display_name": adapter_cls.display_name,
                "capabilities": [c for c in CAPABILITIES if adapter_cls.supports(c)],
            }
            for name, adapter_cls in ADAPTERS.items()
        },
        "ai_providers": {
            name: {"label": provider.label, "models": [model for model, _ in provider.models]}
            for name, provider in PROVIDERS.items()
        },
    }


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
