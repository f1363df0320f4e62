"""
validators.py – Format and range checks for calculator and account input.

The CN code check reports one of four states so the caller can render
"nothing typed yet" differently from a format error:

* EMPTY        – no input yet
* CATEGORIZED  – valid code whose chapter maps to a CBAM goods category
* VALID        – valid code, chapter not in the goods table
* INVALID      – non-empty but not exactly 8 digits

Nothing here has side effects; rendering is the caller's concern.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from cbam_calculator.constants import (
    CN_CODE_PATTERN,
    CN_LABEL_INVALID,
    CN_LABEL_VALID,
    CN_PREFIX_LENGTH,
    DEFAULT_PRODUCT_TYPE,
    EMAIL_PATTERN,
    PASSWORD_MIN_LENGTH,
)
from cbam_calculator.emission_factors import CBAM_GOODS

_CN_RE = re.compile(CN_CODE_PATTERN)
_EMAIL_RE = re.compile(EMAIL_PATTERN)


class CNState(str, Enum):
    EMPTY = "empty"
    CATEGORIZED = "categorized"
    VALID = "valid"
    INVALID = "invalid"


@dataclass(frozen=True)
class CNValidation:
    """Outcome of ``validate_cn_code``."""

    state: CNState
    category: str | None = None

    @property
    def valid(self) -> bool:
        return self.state in (CNState.CATEGORIZED, CNState.VALID)

    @property
    def label(self) -> str:
        if self.state is CNState.CATEGORIZED:
            return f"Detected: {self.category}"
        if self.state is CNState.VALID:
            return CN_LABEL_VALID
        if self.state is CNState.INVALID:
            return CN_LABEL_INVALID
        return ""

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "valid": self.valid,
            "category": self.category,
            "label": self.label,
        }


def is_valid_cn_code(code: str | None) -> bool:
    """True iff *code* is exactly 8 ASCII digits."""
    return isinstance(code, str) and _CN_RE.fullmatch(code) is not None


def validate_cn_code(code: str | None, goods: Mapping[str, str] = CBAM_GOODS) -> CNValidation:
    """Classify *code* and resolve its goods category from the 2-digit prefix."""
    if not code:
        return CNValidation(CNState.EMPTY)
    if not is_valid_cn_code(code):
        return CNValidation(CNState.INVALID)
    category = goods.get(code[:CN_PREFIX_LENGTH])
    if category:
        return CNValidation(CNState.CATEGORIZED, category)
    return CNValidation(CNState.VALID)


def resolve_product_type(code: str | None, goods: Mapping[str, str] = CBAM_GOODS) -> str:
    """Goods category for *code*, or ``"Unknown"``."""
    if not code:
        return DEFAULT_PRODUCT_TYPE
    return goods.get(code[:CN_PREFIX_LENGTH], DEFAULT_PRODUCT_TYPE)


def parse_quantity(value: Any) -> float:
    """
    Read a numeric form field the way the calculator form does.

    Blank, missing or unparseable values read as 0.0. Commas and spaces are
    stripped first so "1,250" reads as 1250.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if value == value else 0.0   # NaN → 0
    if isinstance(value, str):
        cleaned = re.sub(r"[,\s]", "", value)
        if not cleaned:
            return 0.0
        try:
            number = float(cleaned)
        except ValueError:
            return 0.0
        return number if number == number else 0.0
    return 0.0


def validate_credentials(email: str | None, password: str | None) -> list[str]:
    """
    Check sign-up input before it reaches the identity provider.

    Returns a list of human-readable problems; empty means acceptable.
    """
    errors: list[str] = []
    if not email or not _EMAIL_RE.fullmatch(email.strip()):
        errors.append("Please enter a valid email address")
    if not password or len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    return errors
