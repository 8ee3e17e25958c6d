from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .chat import FAILED_TURN_TEXT
from .config import AppConfig, load_config
from .derivations import dashboard_payload
from .errors import (
    AnalysisCancelled,
    AnalysisError,
    AnalysisInProgress,
    AnalysisNotFound,
    ChatRequestFailed,
    ChatTurnInProgress,
    ClientNotFound,
    EmptyInputError,
    ExtractionRequestFailed,
    FileUnreadable,
    MalformedAnalysisResult,
    PersistenceFailed,
)
from .llm_client import LLMClient
from .normalizer import UploadedFile
from .pipeline import FAILURE_NOTICE, AnalysisService
from .store import AnalysisStore, ClientRegistry


ERROR_STATUS = {
    EmptyInputError: 400,
    FileUnreadable: 400,
    ClientNotFound: 404,
    AnalysisNotFound: 404,
    AnalysisInProgress: 409,
    AnalysisCancelled: 409,
    ChatTurnInProgress: 409,
    ExtractionRequestFailed: 502,
    MalformedAnalysisResult: 502,
    ChatRequestFailed: 502,
    PersistenceFailed: 500,
}


class RegisterClientRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    legal_name: str = Field(alias="razaoSocial")
    trade_name: str = Field(alias="nomeFantasia")
    tax_id: str = Field(alias="cnpj")
    activity_code: str = Field(alias="cnae")


class NoteRequest(BaseModel):
    text: str


class ChatRequest(BaseModel):
    message: str


def create_app(
    llm_factory: Optional[Callable[[AppConfig], Any]] = None,
    data_dir: Optional[Path] = None,
) -> FastAPI:
    app = FastAPI(title="FinanzaViz")
    config = load_config()

    use_default_factory = llm_factory is None
    if use_default_factory:
        def llm_factory(cfg: AppConfig):
            return LLMClient(
                model=cfg.extraction_model_name,
                chat_model=cfg.chat_model_name,
                api_key=cfg.gemini_api_key,
                base_url=cfg.gemini_base_url,
                timeout=cfg.llm_timeout_seconds,
            )

    root = Path(data_dir or config.data_dir)
    service = AnalysisService(
        llm_factory(config),
        ClientRegistry(root / "clients.json"),
        AnalysisStore(root / "analyses"),
        max_workers=config.normalize_max_concurrency,
        thinking_budget=config.chat_thinking_budget,
        runs_dir=root / "runs",
    )
    app.state.service = service

    @app.exception_handler(AnalysisError)
    async def analysis_error_handler(_request: Request, exc: AnalysisError):
        status = ERROR_STATUS.get(type(exc), 500)
        detail = FAILURE_NOTICE if status == 502 else str(exc)
        return JSONResponse(
            status_code=status,
            content={"detail": detail, "error": type(exc).__name__},
        )

    @app.get("/api/clients")
    def list_clients():
        return [c.model_dump(by_alias=True) for c in service.registry.list()]

    @app.post("/api/clients")
    def register_client(payload: RegisterClientRequest):
        client = service.registry.register(
            legal_name=payload.legal_name,
            trade_name=payload.trade_name,
            tax_id=payload.tax_id,
            activity_code=payload.activity_code,
        )
        return client.model_dump(by_alias=True)

    @app.post("/api/clients/{client_id}/analysis")
    async def run_analysis(
        client_id: str,
        income_files: List[UploadFile] = File(default=[]),
        balance_files: List[UploadFile] = File(default=[]),
    ):
        if use_default_factory and not config.gemini_api_key:
            raise HTTPException(status_code=400, detail="Missing API key")
        income = [await _to_uploaded(f) for f in income_files]
        balance = [await _to_uploaded(f) for f in balance_files]
        analysis = await run_in_threadpool(service.analyze, client_id, income, balance)
        return dashboard_payload(analysis)

    @app.get("/api/clients/{client_id}/analysis")
    def get_analysis(client_id: str):
        analysis = service.current(client_id)
        if analysis is None:
            raise AnalysisNotFound(client_id)
        return dashboard_payload(analysis)

    @app.delete("/api/clients/{client_id}/analysis/pending")
    def reset_analysis(client_id: str):
        service.reset(client_id)
        return {"reset": True}

    @app.put("/api/clients/{client_id}/analysis/notes/{section_id}")
    def save_note(client_id: str, section_id: str, payload: NoteRequest):
        analysis = service.add_note(client_id, section_id, payload.text)
        return {"chartNotes": analysis.chart_notes}

    @app.post("/api/clients/{client_id}/chat")
    async def ask(client_id: str, payload: ChatRequest):
        session = service.chat_session(client_id)
        try:
            answer = await run_in_threadpool(session.ask, payload.message)
        except ChatRequestFailed:
            return JSONResponse(
                status_code=502,
                content={"detail": FAILED_TURN_TEXT, "messages": _dump_messages(session)},
            )
        return {"answer": answer, "messages": _dump_messages(session)}

    return app


app = create_app()


async def _to_uploaded(upload: UploadFile) -> UploadedFile:
    return UploadedFile(
        name=upload.filename or "",
        content=await upload.read(),
        mime_type=upload.content_type or "",
    )


def _dump_messages(session) -> List[Dict[str, str]]:
    return [m.model_dump() for m in session.messages]
