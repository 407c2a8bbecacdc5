# career_rag/app/api.py
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from career_rag.app.container import CareerRAGContainer, build_container
from career_rag.common.errors import AnalysisFailedError
from career_rag.config import GlobalConfig
from career_rag.pipelines.results import AnalysisResult, SectionReport

logger = logging.getLogger("career_rag.api")

DEFAULT_CONFIG_PATH = "config/config.yaml"


class AnalyzeRequest(BaseModel):
    document_text: str = Field(min_length=1)
    role: str = Field(min_length=1)
    job_description: Optional[str] = None


def _load_container() -> CareerRAGContainer:
    # CAREER_RAG_CONFIG overrides the path for uvicorn deployments.
    cfg_path = os.environ.get("CAREER_RAG_CONFIG", DEFAULT_CONFIG_PATH)
    if Path(cfg_path).exists():
        cfg = GlobalConfig.load(cfg_path)
    else:
        logger.warning("Config file %s not found; using built-in defaults.", cfg_path)
        cfg = GlobalConfig()
    return build_container(cfg)


def create_app(container: Optional[CareerRAGContainer] = None) -> FastAPI:
    """Create the FastAPI application.

    Parameters
    ----------
    container : CareerRAGContainer or None, optional
        Preconfigured container. When omitted the container is built from
        ``CAREER_RAG_CONFIG`` at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "container", None) is None:
            app.state.container = _load_container()
        await app.state.container.warm_up()
        yield

    app = FastAPI(title="Career RAG API", version="0.1.0", lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(AnalysisFailedError)
    async def analysis_failed(request: Request, exc: AnalysisFailedError):
        logger.error("Analysis failed at stage %s: %s", exc.stage, exc.message)
        return JSONResponse(status_code=502, content={"error": exc.message, "stage": exc.stage})

    @app.get("/health")
    def health():
        c = app.state.container
        ready = c is not None and c.standards_index.is_ready
        return {"status": "ok", "standards_index_ready": ready}

    @app.post("/v1/analyze", response_model=AnalysisResult)
    async def analyze(req: AnalyzeRequest):
        return await app.state.container.pipeline.analyze(
            req.document_text, req.role, job_description=req.job_description
        )

    @app.post("/v1/analyze/sections", response_model=SectionReport)
    async def analyze_sections(req: AnalyzeRequest):
        return await app.state.container.pipeline.analyze_sections(
            req.document_text, req.role, job_description=req.job_description
        )

    return app


app = create_app()
