"""
HTTP surface for per-user memories and email memories.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .deps import Services, ensure_schema, get_services
from .schemas import (
    MemoryCreateRequest,
    MemoryUpdateRequest,
    EmailCreateRequest,
    MemoryOut,
    MemorySearchHitOut,
    EmailOut,
    EmailSearchHitOut,
    CreatedData,
    CreatedResponse,
    SuccessResponse,
    MemoryResponse,
    MemoryListResponse,
    MemorySearchResponse,
    EmailResponse,
    EmailListResponse,
    EmailSearchResponse,
    ErrorResponse,
    HealthResponse,
)
from ..core.config import VERSION, DEFAULT_TOP_K, MAX_TOP_K, debug_enabled
from ..core.db import health_check
from ..core.email_memory import EmailPayload
from ..core.errors import (
    EmbeddingError,
    MemvaultError,
    NotFoundError,
    StoreError,
    ValidationError,
    VectorIndexError,
)
from ..core.schema import EmailRecord, Memory
from ..util.logging import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run schema initialization once before serving traffic."""
    services = app.dependency_overrides.get(get_services, get_services)()
    try:
        await services.schema_latch.ensure()
    except StoreError as e:
        # Requests retry through the ensure_schema dependency
        logger.error(f"Failed to initialize database: {e}")
    logger.info("Memory service started")
    yield


app = FastAPI(
    title="memvault",
    version=VERSION,
    description="Per-user text memories with semantic search over SQLite and a vector index",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None,
    lifespan=lifespan,
)


def _memory_out(memory: Memory) -> MemoryOut:
    return MemoryOut(id=memory.id, content=memory.content, created_at=memory.created_at)


def _email_fields(record: EmailRecord) -> dict:
    return {
        "id": record.memory_id,
        "sender": record.sender,
        "recipients": record.recipient_list,
        "subject": record.subject,
        "date": record.date,
        "company": record.company,
        "message_id": record.message_id,
        "in_reply_to": record.in_reply_to,
        "created_at": record.created_at,
        "content": record.content,
    }


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    body = ErrorResponse(error=message, **extra)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


_GENERIC_MESSAGES = {
    StoreError: "Content store failure",
    EmbeddingError: "Embedding provider failure",
    VectorIndexError: "Vector index failure",
}


@app.exception_handler(MemvaultError)
async def memvault_exception_handler(request: Request, exc: MemvaultError):
    """Map the error taxonomy onto status codes and the error envelope."""
    if isinstance(exc, (ValidationError, NotFoundError)):
        return _error(exc.status_code, exc.message)

    if isinstance(exc, VectorIndexError) and exc.content_persisted:
        message = "Memory stored but not indexed; it will not appear in search results"
    else:
        message = next((text for cls, text in _GENERIC_MESSAGES.items() if isinstance(exc, cls)),
                       "Internal server error")
    if debug_enabled():
        message = f"{message}: {exc.message}"

    return _error(exc.status_code, message, id=exc.memory_id,
                  content_persisted=getattr(exc, "content_persisted", None) or None)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()) if part != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    )
    return _error(400, f"Invalid request: {details}")


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions."""
    logger.error(f"Unhandled exception: {exc}")
    message = "Internal server error"
    if debug_enabled():
        message = f"{message}: {exc}"
    return _error(500, message)


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint(services: Services = Depends(get_services)):
    """Check system health."""
    db_health = health_check(services.db_path) if services.db_path else services.schema_latch.ready

    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
        schema_ready=services.schema_latch.ready,
        vector_provider=services.vector_store.__class__.__name__,
        embedding_provider=services.embedding_provider.__class__.__name__,
    )


# Generic memories. /search is declared before /{memory_id} so it is not captured as an id.

@app.get("/{user_id}/memories", response_model=MemoryListResponse)
async def list_memories(user_id: str, services: Services = Depends(ensure_schema)):
    memories = await services.orchestrator.list(user_id)
    return MemoryListResponse(data=[_memory_out(m) for m in memories])


@app.post("/{user_id}/memories", response_model=CreatedResponse)
async def create_memory(user_id: str, request: MemoryCreateRequest, services: Services = Depends(ensure_schema)):
    memory_id = await services.orchestrator.create(request.content, user_id)
    return CreatedResponse(data=CreatedData(id=memory_id))


@app.get("/{user_id}/memories/search", response_model=MemorySearchResponse)
async def search_memories(
    user_id: str,
    q: str = Query("", description="Search text"),
    k: int = Query(DEFAULT_TOP_K, ge=1, le=MAX_TOP_K, description="Maximum candidates to rank"),
    services: Services = Depends(ensure_schema),
):
    if not q.strip():
        raise ValidationError("Missing query")

    hits = await services.search_engine.search(q, user_id, top_k=k)
    return MemorySearchResponse(data=[
        MemorySearchHitOut(id=hit.id, content=hit.record.content, created_at=hit.record.created_at,
                           score=hit.score)
        for hit in hits
    ])


@app.get("/{user_id}/memories/{memory_id}", response_model=MemoryResponse)
async def get_memory(user_id: str, memory_id: str, services: Services = Depends(ensure_schema)):
    memory = await services.orchestrator.get(memory_id, user_id)
    if memory is None:
        raise NotFoundError("Not Found", memory_id)
    return MemoryResponse(data=_memory_out(memory))


@app.put("/{user_id}/memories/{memory_id}", response_model=SuccessResponse)
async def update_memory(user_id: str, memory_id: str, request: MemoryUpdateRequest,
                        services: Services = Depends(ensure_schema)):
    await services.orchestrator.update(memory_id, user_id, request.content)
    return SuccessResponse()


@app.delete("/{user_id}/memories/{memory_id}", response_model=SuccessResponse)
async def delete_memory(user_id: str, memory_id: str, services: Services = Depends(ensure_schema)):
    await services.orchestrator.delete(memory_id, user_id)
    return SuccessResponse()


# Email memories

@app.post("/{user_id}/emails", response_model=CreatedResponse)
async def create_email(user_id: str, request: EmailCreateRequest, services: Services = Depends(ensure_schema)):
    payload = EmailPayload(**request.model_dump())
    memory_id = await services.emails.create_structured(payload, user_id)
    return CreatedResponse(data=CreatedData(id=memory_id))


@app.get("/{user_id}/emails", response_model=EmailListResponse)
async def list_emails(user_id: str, company: str = Query(None), services: Services = Depends(ensure_schema)):
    records = await services.emails.list_structured(user_id, company)
    return EmailListResponse(data=[EmailOut(**_email_fields(r)) for r in records])


@app.get("/{user_id}/emails/search", response_model=EmailSearchResponse)
async def search_emails(
    user_id: str,
    q: str = Query("", description="Search text"),
    company: str = Query(None, description="Only emails whose derived company equals this value"),
    k: int = Query(DEFAULT_TOP_K, ge=1, le=MAX_TOP_K, description="Maximum candidates to rank"),
    services: Services = Depends(ensure_schema),
):
    hits = await services.emails.search_structured(q, user_id, company=company, top_k=k)
    return EmailSearchResponse(data=[
        EmailSearchHitOut(**_email_fields(hit.record), score=hit.score) for hit in hits
    ])


@app.get("/{user_id}/emails/{memory_id}", response_model=EmailResponse)
async def get_email(user_id: str, memory_id: str, services: Services = Depends(ensure_schema)):
    record = await services.emails.get_structured(memory_id, user_id)
    if record is None:
        raise NotFoundError("Not Found", memory_id)
    return EmailResponse(data=EmailOut(**_email_fields(record)))


@app.delete("/{user_id}/emails/{memory_id}", response_model=SuccessResponse)
async def delete_email(user_id: str, memory_id: str, services: Services = Depends(ensure_schema)):
    await services.emails.delete_structured(memory_id, user_id)
    return SuccessResponse()
