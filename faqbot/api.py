from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from .bootstrap import Engine, load_engine
from .coordinator import NO_VALID_ENTRIES

logger = logging.getLogger(__name__)


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatReq(BaseModel):
    message: str
    history: Optional[List[ChatTurn]] = None


class ChatResp(BaseModel):
    reply: str


def _etag_matches(header: Optional[str], etag: str) -> bool:
    if not header:
        return False
    for tag in header.split(","):
        tag = tag.strip()
        if tag == "*":
            return True
        if tag.startswith("W/"):
            tag = tag[2:]
        if tag == etag:
            return True
    return False


def get_engine(request: Request) -> Engine:
    return request.app.state.engine


def require_admin(request: Request, x_admin_token: Optional[str] = Header(None)) -> None:
    expected = get_engine(request).settings.admin_token
    if not expected or not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


def create_app(engine: Optional[Engine] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.engine.close()

    app = FastAPI(title="faqbot", lifespan=lifespan)
    app.state.engine = engine or load_engine()

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Malformed request body"})

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.post("/chat", response_model=ChatResp)
    def chat(req: ChatReq, engine: Engine = Depends(get_engine)) -> ChatResp:
        history = [t.model_dump() for t in req.history] if req.history else None
        return ChatResp(reply=engine.resolver.answer(req.message, history))

    @app.get("/faq")
    def get_faq(
        engine: Engine = Depends(get_engine),
        if_none_match: Optional[str] = Header(None),
    ) -> Response:
        entry_set = engine.coordinator.get_entries()
        etag = entry_set.etag
        if _etag_matches(if_none_match, etag):
            return Response(status_code=304, headers={"ETag": etag})
        return JSONResponse(
            content=entry_set.wire(),
            headers={"ETag": etag, "Cache-Control": "no-store"},
        )

    @app.post("/faq", dependencies=[Depends(require_admin)])
    def replace_faq(payload: List[Any] = Body(...), engine: Engine = Depends(get_engine)) -> JSONResponse:
        result = engine.coordinator.save_entries(payload)
        logger.info("POST /faq: written=%d rejected=%d", result.written, len(result.rejected))
        status = 200
        if not result.success:
            status = 400 if result.error == NO_VALID_ENTRIES else 500
        return JSONResponse(status_code=status, content=result.model_dump(exclude_none=True))

    @app.post("/faq/single", dependencies=[Depends(require_admin)])
    def add_single(payload: Dict[str, Any] = Body(...), engine: Engine = Depends(get_engine)) -> JSONResponse:
        result = engine.coordinator.append_single(payload)
        status = 200
        if not result.success:
            status = 400 if result.rejected else 500
        return JSONResponse(
            status_code=status,
            content={"success": result.success, **({"error": result.error} if result.error else {})},
        )

    @app.delete("/cache", dependencies=[Depends(require_admin)])
    def clear_cache(engine: Engine = Depends(get_engine)) -> Dict[str, bool]:
        return {"success": engine.coordinator.clear_cache().success}

    @app.get("/health")
    def health(engine: Engine = Depends(get_engine)) -> Dict[str, Any]:
        return engine.coordinator.health().model_dump()

    @app.head("/health")
    def health_head() -> Response:
        return Response(status_code=200)

    return app
