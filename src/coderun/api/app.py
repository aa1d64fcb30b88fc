from __future__ import annotations
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..core.models import Language, Status, Submission
from ..logging import setup_logging
from ..services.engine import ExecutionEngine
from ..settings import Settings, load_settings

HTTP_STATUS: Dict[Status, int] = {
    Status.SUCCESS: 200,
    Status.COMPILE_ERROR: 400,
    Status.RUNTIME_ERROR: 400,
    Status.TIMEOUT: 400,
    Status.UNSUPPORTED_LANGUAGE: 400,
    Status.INTERNAL_ERROR: 500,
}


# --------- Schemas ---------
class CompileReq(BaseModel):
    code: str
    language: Language
    stdinput: List[str] = Field(default_factory=list)


class CompileRes(BaseModel):
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime


class LanguageRes(BaseModel):
    language: str
    extension: str
    stages: List[str]


def create_app(settings: Optional[Settings] = None, engine: Optional[ExecutionEngine] = None) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings.log_level)
    engine = engine or ExecutionEngine.from_settings(settings)

    app = FastAPI(title="coderun")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.engine = engine

    # --------- Endpoints ---------
    @app.get("/")
    async def root():
        return {"message": "Welcome to the coderun API"}

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/languages", response_model=List[LanguageRes])
    def languages():
        out = []
        for lang in engine.registry.languages():
            adapter = engine.registry.resolve(lang)
            out.append(LanguageRes(
                language=lang.value,
                extension=adapter.extension,
                stages=[k.value for k in adapter.kinds],
            ))
        return out

    @app.post("/compile", response_model=CompileRes, response_model_exclude_none=True)
    async def compile_program(req: CompileReq):
        result = await engine.execute(
            Submission(language=req.language, source_code=req.code, stdin_lines=tuple(req.stdinput))
        )
        body = CompileRes(**result.to_response())
        return JSONResponse(
            status_code=HTTP_STATUS[result.status],
            content=body.model_dump(mode="json", exclude_none=True),
        )

    return app


app = create_app()
