"""
controller.py – Calculator workflow: form edits, calculation, save-then-export.

States
──────
    CLOSED ──open()──▶ OPEN ──calculate()──▶ CALCULATED ──export_pdf()──▶ EXPORTING
                        ▲          │ error                   │ done / failed
                        └──────────┘                         ▼
                                                        CALCULATED
    export_pdf() without a session ──▶ AUTH_REQUIRED ──SIGNED_IN──▶ CALCULATED

Every form edit is written to the draft store straight away. The controller
holds one result at a time; a new calculation replaces it.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from cbam_calculator.calculations import (
    CalculationError,
    CalculationResult,
    calculate,
    counted_precursors,
)
from cbam_calculator.emission_factors import DEFAULT_FACTORS, EmissionFactorTable
from cbam_calculator.export import to_pdf, to_xml
from cbam_calculator.form_state import EMPTY_DRAFT, DraftCorruptError, DraftStore, FormDraft
from cbam_calculator.schemas import CalculationInput, PersistedReport
from cbam_calculator.validators import CNValidation, validate_cn_code

from . import reports
from .errors import ExportInProgressError, UnauthenticatedError
from .session import SIGNED_IN, SessionManager, UserSession

logger = logging.getLogger(__name__)


class CalculatorState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    CALCULATED = "calculated"
    EXPORTING = "exporting"
    AUTH_REQUIRED = "auth_required"


@dataclass(frozen=True)
class Notice:
    """Message shown at modal level; ``tone`` is "error" or "success"."""

    tone: str
    message: str

    def to_dict(self) -> dict:
        return {"tone": self.tone, "message": self.message}


SaveReport = Callable[[CalculationInput, CalculationResult, str], PersistedReport]


class CalculatorController:
    def __init__(
        self,
        store: DraftStore,
        sessions: SessionManager,
        factors: EmissionFactorTable = DEFAULT_FACTORS,
        save_report: SaveReport = reports.save_report,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.factors = factors
        self._save_report = save_report

        self.state = CalculatorState.CLOSED
        self.draft: FormDraft = EMPTY_DRAFT
        self.cn_status: CNValidation = validate_cn_code("")
        self.result: CalculationResult | None = None
        self.result_input: CalculationInput | None = None
        self.notice: Notice | None = None
        self.user: UserSession | None = None
        self._unsubscribe = sessions.on_session_change(self._on_session_change)

    def close_subscription(self) -> None:
        self._unsubscribe()

    # ─────────────────────────────────────────────────────────
    # Modal
    # ─────────────────────────────────────────────────────────

    def open(self) -> None:
        """Show the calculator, restoring the saved draft."""
        try:
            self.draft = self.store.load()
        except DraftCorruptError as exc:
            logger.warning("Ignoring saved draft: %s", exc)
            self.draft = EMPTY_DRAFT
            self.notice = Notice("error", "Saved form could not be restored; starting blank.")
        self.cn_status = validate_cn_code(self.draft.cn_code)
        if self.state is CalculatorState.CLOSED:
            self.state = CalculatorState.CALCULATED if self.result else CalculatorState.OPEN

    def close(self) -> None:
        self.state = CalculatorState.CLOSED

    # ─────────────────────────────────────────────────────────
    # Form edits
    # ─────────────────────────────────────────────────────────

    def _edit(self, draft: FormDraft) -> FormDraft:
        self.draft = draft
        self.store.save(draft)
        return draft

    def set_field(self, name: str, value: Any) -> FormDraft:
        draft = self._edit(self.draft.with_field(name, value))
        if name == "cn_code":
            self.cn_status = validate_cn_code(draft.cn_code)
        return draft

    def toggle_precursors(self) -> FormDraft:
        return self._edit(self.draft.toggle_precursors())

    def add_precursor_row(self, type: str = "", qty: str = "") -> FormDraft:
        return self._edit(self.draft.add_precursor_row(type, qty))

    def remove_precursor_row(self, index: int) -> FormDraft:
        return self._edit(self.draft.remove_precursor_row(index))

    def update_precursor_row(self, index: int, type: str | None = None, qty: Any = None) -> FormDraft:
        return self._edit(self.draft.update_precursor_row(index, type=type, qty=qty))

    # ─────────────────────────────────────────────────────────
    # Calculation
    # ─────────────────────────────────────────────────────────

    def calculate(self) -> CalculationResult:
        """Run the calculator on the current draft."""
        if self.state is CalculatorState.EXPORTING:
            raise ExportInProgressError("Export in progress")
        calc_input = self.draft.to_calculation_input()
        try:
            result = calculate(calc_input, self.factors)
        except CalculationError as exc:
            self.state = CalculatorState.OPEN
            self.notice = Notice("error", exc.message)
            raise
        self.result = result
        self.result_input = calc_input
        self.notice = None
        self.state = CalculatorState.CALCULATED
        self.store.save(self.draft)
        return result

    # ─────────────────────────────────────────────────────────
    # Export
    # ─────────────────────────────────────────────────────────

    async def export_pdf(self) -> tuple[PersistedReport, bytes]:
        """
        Save the current result as a report, then render it as PDF tagged
        with the new report id.

        Raises
        ------
        ExportInProgressError
            A previous export has not finished.
        CalculationError
            Nothing has been calculated yet.
        UnauthenticatedError
            No signed-in user; state moves to AUTH_REQUIRED.
        ServiceUnavailableError, PersistenceError
            Save failed; state returns to CALCULATED.
        """
        if self.state is CalculatorState.EXPORTING:
            raise ExportInProgressError("Export already in progress")
        if self.result is None:
            raise CalculationError("result", "Please calculate emissions first")

        # EXPORTING is set before the first await.
        self.state = CalculatorState.EXPORTING
        result, calc_input = self.result, self.result_input
        try:
            user = await self.sessions.get_current_user()
            if user is None:
                self.state = CalculatorState.AUTH_REQUIRED
                self.notice = Notice("error", "Please login to save and download your report")
                raise UnauthenticatedError()

            snapshot_input = calc_input.model_copy(
                update={"precursors": counted_precursors(calc_input.precursors, self.factors)}
            )
            report = await asyncio.to_thread(self._save_report, snapshot_input, result, user.user_id)
            pdf = await asyncio.to_thread(to_pdf, result, report.id)
        except UnauthenticatedError:
            raise
        except Exception as exc:
            self.notice = Notice("error", f"Error saving report: {exc}")
            logger.error("Export failed: %s", exc)
            raise
        finally:
            if self.state is CalculatorState.EXPORTING:
                self.state = CalculatorState.CALCULATED

        self.notice = Notice("success", f"Report {report.id} saved")
        return report, pdf

    def export_xml(self) -> str:
        if self.result is None:
            raise CalculationError("result", "Please calculate emissions first")
        return to_xml(self.result)

    # ─────────────────────────────────────────────────────────
    # Session
    # ─────────────────────────────────────────────────────────

    def _on_session_change(self, event: str, session: UserSession | None) -> None:
        self.user = session
        if event == SIGNED_IN and self.state is CalculatorState.AUTH_REQUIRED:
            self.state = CalculatorState.CALCULATED if self.result else CalculatorState.OPEN
            self.notice = None

    def snapshot(self) -> dict:
        return {
            "state": self.state.value,
            "draft": self.draft.to_dict(),
            "cn_status": self.cn_status.to_dict(),
            "result": self.result.to_dict() if self.result else None,
            "notice": self.notice.to_dict() if self.notice else None,
            "user": self.user.to_dict() if self.user else None,
        }
