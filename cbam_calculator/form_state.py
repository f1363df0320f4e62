"""
form_state.py – Calculator form draft and its local persistence.

A ``FormDraft`` is the calculator form exactly as typed (strings, so a
half-entered "12." survives a reload) plus the precursor section toggle and
the precursor rows in display order. Every edit returns a new draft.

Drafts live in one slot of a local key-value store:

    <state_dir>/storage.json
        {"cbamCalculatorState": "<json-encoded draft>"}

Saving is best effort: a write failure is logged and dropped. Loading
distinguishes a missing slot (blank form) from one that cannot be decoded
(``DraftCorruptError``).
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Protocol

from cbam_calculator.constants import DRAFT_SLOT, STATE_FILE_NAME
from cbam_calculator.schemas import CalculationInput, PrecursorInput
from cbam_calculator.validators import parse_quantity

logger = logging.getLogger(__name__)

# Form field name → storage key
_FIELD_KEYS = {
    "cn_code": "cnCode",
    "production_qty": "productionQty",
    "electricity": "electricity",
    "diesel": "diesel",
    "coal": "coal",
}
FORM_FIELDS = tuple(_FIELD_KEYS)


class DraftCorruptError(ValueError):
    """The stored draft exists but cannot be decoded."""


# ─────────────────────────────────────────────────────────────
# Draft value objects
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PrecursorRow:
    type: str = ""
    qty: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "qty": self.qty}


@dataclass(frozen=True)
class FormDraft:
    """Snapshot of every calculator form field."""

    cn_code: str = ""
    production_qty: str = ""
    electricity: str = ""
    diesel: str = ""
    coal: str = ""
    precursor_active: bool = False
    precursors: tuple[PrecursorRow, ...] = field(default_factory=tuple)

    # -- edits --

    def with_field(self, name: str, value: Any) -> FormDraft:
        if name not in _FIELD_KEYS:
            raise KeyError(f"Unknown form field: {name}")
        return replace(self, **{name: "" if value is None else str(value)})

    def toggle_precursors(self) -> FormDraft:
        return replace(self, precursor_active=not self.precursor_active)

    def add_precursor_row(self, type: str = "", qty: str = "") -> FormDraft:
        return replace(self, precursors=self.precursors + (PrecursorRow(type, qty),))

    def remove_precursor_row(self, index: int) -> FormDraft:
        self._check_index(index)
        rows = self.precursors[:index] + self.precursors[index + 1:]
        return replace(self, precursors=rows)

    def update_precursor_row(self, index: int, type: str | None = None, qty: Any = None) -> FormDraft:
        self._check_index(index)
        row = self.precursors[index]
        new_row = PrecursorRow(
            type=row.type if type is None else type,
            qty=row.qty if qty is None else str(qty),
        )
        rows = self.precursors[:index] + (new_row,) + self.precursors[index + 1:]
        return replace(self, precursors=rows)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.precursors):
            raise IndexError(f"No precursor row at index {index}")

    # -- conversions --

    def to_calculation_input(self) -> CalculationInput:
        """Parse the typed values into a calculation request."""
        return CalculationInput(
            cn_code=self.cn_code.strip(),
            production_qty=parse_quantity(self.production_qty),
            electricity=max(parse_quantity(self.electricity), 0.0),
            diesel=max(parse_quantity(self.diesel), 0.0),
            coal=max(parse_quantity(self.coal), 0.0),
            precursors=[
                PrecursorInput(type=r.type, qty=parse_quantity(r.qty))
                for r in self.precursors
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {key: getattr(self, name) for name, key in _FIELD_KEYS.items()}
        data["precursorActive"] = self.precursor_active
        data["precursors"] = [r.to_dict() for r in self.precursors]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FormDraft:
        if not isinstance(data, dict):
            raise DraftCorruptError("Stored draft is not a JSON object")
        values = {name: _as_text(data.get(key)) for name, key in _FIELD_KEYS.items()}

        active = data.get("precursorActive", False)
        if isinstance(active, str):
            active = active == "true"

        raw_rows = data.get("precursors") or []
        if not isinstance(raw_rows, list):
            raise DraftCorruptError("Stored precursor rows are not a list")
        rows = []
        for raw in raw_rows:
            if not isinstance(raw, dict):
                raise DraftCorruptError(f"Stored precursor row is not an object: {raw!r}")
            rows.append(PrecursorRow(type=_as_text(raw.get("type")), qty=_as_text(raw.get("qty"))))

        return cls(precursor_active=bool(active), precursors=tuple(rows), **values)


EMPTY_DRAFT = FormDraft()


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ─────────────────────────────────────────────────────────────
# Key-value storage
# ─────────────────────────────────────────────────────────────

class SlotStorage(Protocol):
    def get_item(self, key: str) -> str | None: ...
    def set_item(self, key: str, value: str) -> None: ...
    def remove_item(self, key: str) -> None: ...


class JsonFileStorage:
    """
    Local key-value storage backed by one JSON file of string values.

    Writes go to a temp file in the same directory and are renamed into
    place, so a crash mid-write leaves the previous contents intact.
    """

    def __init__(self, state_dir: Path | str, filename: str = STATE_FILE_NAME) -> None:
        self.path = Path(state_dir).expanduser() / filename

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return data

    def _write_all(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        try:
            data = self._read_all()
        except ValueError:
            logger.warning("Discarding unreadable storage file %s", self.path)
            data = {}
        data[key] = value
        self._write_all(data)

    def remove_item(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)


# ─────────────────────────────────────────────────────────────
# Draft store
# ─────────────────────────────────────────────────────────────

class DraftStore:
    """Saves and restores the calculator form in a single storage slot."""

    def __init__(self, storage: SlotStorage, slot: str = DRAFT_SLOT) -> None:
        self.storage = storage
        self.slot = slot

    def save(self, draft: FormDraft) -> None:
        """Overwrite the slot with *draft*. Failures are logged, never raised."""
        try:
            self.storage.set_item(self.slot, json.dumps(draft.to_dict(), ensure_ascii=False))
        except OSError as exc:
            logger.warning("Could not save calculator draft: %s", exc)

    def load(self) -> FormDraft:
        """
        Return the stored draft, or ``EMPTY_DRAFT`` when nothing is stored.

        Raises
        ------
        DraftCorruptError
            If the slot (or the file holding it) cannot be decoded.
        """
        try:
            raw = self.storage.get_item(self.slot)
        except ValueError as exc:
            raise DraftCorruptError(f"Draft storage is unreadable: {exc}") from exc
        if raw is None:
            return EMPTY_DRAFT
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise DraftCorruptError(f"Stored draft is not valid JSON: {exc}") from exc
        return FormDraft.from_dict(data)

    def clear(self) -> None:
        try:
            self.storage.remove_item(self.slot)
        except ValueError as exc:
            raise DraftCorruptError(f"Draft storage is unreadable: {exc}") from exc
