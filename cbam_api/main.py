"""
main.py – FastAPI service for the CBAM embedded-emissions calculator.

Start:
    cd /path/to/repo
    uvicorn cbam_api.main:app --reload --port 8000

Needs SUPABASE_URL and SUPABASE_ANON_KEY (auth) and DATABASE_URL (saved
reports) in the environment or a .env file at the repo root.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from cbam_calculator.calculations import CalculationError, calculate
from cbam_calculator.config import get_config
from cbam_calculator.constants import PDF_MIME_TYPE, XML_MIME_TYPE
from cbam_calculator.emission_factors import precursor_materials
from cbam_calculator.export import pdf_filename, xml_filename
from cbam_calculator.form_state import DraftStore, JsonFileStorage
from cbam_calculator.schemas import CalculationInput, Credentials
from cbam_calculator.validators import validate_cn_code

from . import dashboard, reports
from .controller import CalculatorController
from .errors import (
    AuthError,
    ExportInProgressError,
    PersistenceError,
    ServiceUnavailableError,
    UnauthenticatedError,
)
from .session import SessionManager

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)-8s %(message)s")
log = logging.getLogger(__name__)


class FieldUpdate(BaseModel):
    cn_code: Optional[str] = None
    production_qty: Optional[str] = None
    electricity: Optional[str] = None
    diesel: Optional[str] = None
    coal: Optional[str] = None


class PrecursorRowBody(BaseModel):
    type: Optional[str] = None
    qty: Optional[str] = None


def _http_error(exc: Exception) -> HTTPException:
    """Map a service-layer failure to the HTTP status the frontend expects."""
    if isinstance(exc, CalculationError):
        return HTTPException(status_code=400, detail={"field": exc.field, "message": exc.message})
    if isinstance(exc, AuthError):
        return HTTPException(status_code=401, detail=exc.message)
    if isinstance(exc, ExportInProgressError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ServiceUnavailableError):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def create_app(
    sessions: SessionManager | None = None,
    store: DraftStore | None = None,
    controller_kwargs: dict[str, Any] | None = None,
) -> FastAPI:
    """
    Build the app. Collaborators not passed in are created from the
    environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal sessions, store
        factors_kwargs: dict[str, Any] = {}
        if sessions is None or store is None:
            config = get_config()
            sessions = sessions or SessionManager.from_config(config)
            store = store or DraftStore(JsonFileStorage(config.state_dir))
            factors_kwargs["factors"] = config.emission_factors()
        controller = CalculatorController(store, sessions, **{**factors_kwargs, **(controller_kwargs or {})})
        app.state.sessions = sessions
        app.state.controller = controller
        # Start the provider in the background; requests wait for readiness.
        init_task = asyncio.create_task(sessions.start())
        try:
            yield
        finally:
            controller.close_subscription()
            sessions.close()
            if not init_task.done():
                init_task.cancel()
            await asyncio.gather(init_task, return_exceptions=True)

    app = FastAPI(
        title="CBAM Calculator API",
        version="1.0.0",
        description="Embedded-emission calculation, saved reports and PDF/XML export.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def ctl(request: Request) -> CalculatorController:
        return request.app.state.controller

    def session_manager(request: Request) -> SessionManager:
        return request.app.state.sessions

    # ── Stateless calculation ───────────────────────────────────────────────

    @app.get("/api/factors", summary="Emission factors and precursor materials")
    def factors(request: Request):
        table = ctl(request).factors
        return {**table.to_dict(), "materials": precursor_materials(table)}

    @app.get("/api/cn-codes/{code}", summary="Validate a CN code and detect its category")
    def cn_code(code: str):
        return validate_cn_code(code).to_dict()

    @app.post("/api/calculate", summary="Calculate emissions for the given input")
    def calculate_once(body: CalculationInput, request: Request):
        try:
            return calculate(body, ctl(request).factors).to_dict()
        except CalculationError as exc:
            raise _http_error(exc) from exc

    # ── Calculator workflow ─────────────────────────────────────────────────
    # Controller routes stay async: controller state is only touched on the event loop.

    @app.get("/api/calculator", summary="Calculator state, draft and latest result")
    async def calculator(request: Request):
        return ctl(request).snapshot()

    @app.post("/api/calculator/open")
    async def open_calculator(request: Request):
        c = ctl(request)
        c.open()
        return c.snapshot()

    @app.post("/api/calculator/close")
    async def close_calculator(request: Request):
        c = ctl(request)
        c.close()
        return c.snapshot()

    @app.patch("/api/calculator/fields", summary="Update form fields")
    async def update_fields(body: FieldUpdate, request: Request):
        c = ctl(request)
        for name, value in body.model_dump(exclude_unset=True).items():
            c.set_field(name, value)
        return c.snapshot()

    @app.post("/api/calculator/precursors/toggle")
    async def toggle_precursors(request: Request):
        c = ctl(request)
        c.toggle_precursors()
        return c.snapshot()

    @app.post("/api/calculator/precursors", summary="Append a precursor row")
    async def add_precursor(request: Request, body: Optional[PrecursorRowBody] = None):
        c = ctl(request)
        body = body or PrecursorRowBody()
        c.add_precursor_row(body.type or "", body.qty or "")
        return c.snapshot()

    @app.patch("/api/calculator/precursors/{index}")
    async def update_precursor(index: int, body: PrecursorRowBody, request: Request):
        c = ctl(request)
        try:
            c.update_precursor_row(index, type=body.type, qty=body.qty)
        except IndexError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return c.snapshot()

    @app.delete("/api/calculator/precursors/{index}")
    async def remove_precursor(index: int, request: Request):
        c = ctl(request)
        try:
            c.remove_precursor_row(index)
        except IndexError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return c.snapshot()

    @app.post("/api/calculator/calculate")
    async def run_calculation(request: Request):
        c = ctl(request)
        try:
            c.calculate()
        except (CalculationError, ExportInProgressError) as exc:
            raise _http_error(exc) from exc
        return c.snapshot()

    @app.post("/api/calculator/export/pdf", summary="Save the report, then download it as PDF")
    async def export_pdf(request: Request):
        try:
            report, pdf = await ctl(request).export_pdf()
        except (
            CalculationError,
            AuthError,
            ExportInProgressError,
            ServiceUnavailableError,
            PersistenceError,
        ) as exc:
            raise _http_error(exc) from exc
        return Response(
            content=pdf,
            media_type=PDF_MIME_TYPE,
            headers={
                "Content-Disposition": f'attachment; filename="{pdf_filename(report.id)}"',
                "X-Report-Id": report.id,
            },
        )

    @app.get("/api/calculator/export/xml", summary="Download the latest result as XML")
    async def export_xml(request: Request):
        c = ctl(request)
        try:
            body = c.export_xml()
        except CalculationError as exc:
            raise _http_error(exc) from exc
        return Response(
            content=body,
            media_type=XML_MIME_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{xml_filename(c.result)}"'},
        )

    # ── Accounts ────────────────────────────────────────────────────────────

    @app.post("/api/auth/signup")
    async def signup(body: Credentials, request: Request):
        try:
            session = await session_manager(request).sign_up(body.email, body.password)
        except (AuthError, ServiceUnavailableError) as exc:
            raise _http_error(exc) from exc
        if session is None:
            return {"ok": True, "confirmation_required": True, "user": None,
                    "message": "Check your email to confirm your account"}
        return {"ok": True, "confirmation_required": False, "user": session.to_dict()}

    @app.post("/api/auth/login")
    async def login(body: Credentials, request: Request):
        try:
            session = await session_manager(request).sign_in(body.email, body.password)
        except (AuthError, ServiceUnavailableError) as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "user": session.to_dict()}

    @app.post("/api/auth/logout")
    async def logout(request: Request):
        try:
            await session_manager(request).sign_out()
        except (AuthError, ServiceUnavailableError) as exc:
            raise _http_error(exc) from exc
        return {"ok": True}

    @app.get("/api/auth/session")
    async def current_session(request: Request):
        try:
            session = await session_manager(request).get_current_session()
        except ServiceUnavailableError as exc:
            raise _http_error(exc) from exc
        return {"authenticated": session is not None, "user": session.to_dict() if session else None}

    # ── Saved reports ───────────────────────────────────────────────────────

    async def _require_user(request: Request):
        try:
            user = await session_manager(request).get_current_user()
        except ServiceUnavailableError as exc:
            raise _http_error(exc) from exc
        if user is None:
            raise _http_error(UnauthenticatedError())
        return user

    @app.get("/api/reports", summary="Saved reports, newest first")
    async def list_reports(request: Request):
        user = await _require_user(request)
        try:
            rows = await asyncio.to_thread(reports.list_reports, user.user_id)
        except (ServiceUnavailableError, PersistenceError) as exc:
            raise _http_error(exc) from exc
        return [r.model_dump(mode="json") for r in rows]

    @app.get("/api/dashboard", summary="Profile, KPIs and report table")
    async def get_dashboard(request: Request):
        user = await _require_user(request)
        try:
            rows = await asyncio.to_thread(reports.list_reports, user.user_id)
            profile = await asyncio.to_thread(dashboard.fetch_profile, user.user_id)
        except (ServiceUnavailableError, PersistenceError) as exc:
            raise _http_error(exc) from exc
        return dashboard.build_dashboard(user, rows, profile)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
