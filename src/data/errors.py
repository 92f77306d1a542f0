# src/data/errors.py
"""
Error taxonomy for the county pipeline plus a small ledger for row-scoped
data-quality defects.

Fatal errors (FormatError, UnknownStateError, InsufficientDataError) are raised
and abort the run. Row-scoped errors (MissingDataError, NonFiniteValueError)
are recorded in a DataQualityLog and the offending row is excluded.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import pandas as pd


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class FormatError(PipelineError, ValueError):
    """A source file does not carry the expected columns (fatal)."""

    def __init__(self, source: str, missing: Iterable[str], detail: Optional[str] = None):
        self.source = source
        self.missing = list(missing)
        msg = f"{source}: missing or renamed column(s): {self.missing}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class UnknownStateError(PipelineError, ValueError):
    """A state name could not be mapped to its two-letter code (fatal)."""

    def __init__(self, value: object, source: Optional[str] = None):
        self.value = value
        self.source = source
        where = f"{source}: " if source else ""
        super().__init__(f"{where}unknown state {value!r}")


class InsufficientDataError(PipelineError):
    """Not enough rows survive merging/filtering to cross-validate (fatal)."""


class MissingDataError(PipelineError):
    """A row lacks a required field. Row-scoped; the row is dropped."""

    def __init__(self, county: object, state: object, field_name: str, value: object = None):
        self.county = county
        self.state = state
        self.field_name = field_name
        self.value = value
        super().__init__(f"{county}, {state}: missing {field_name} (got {value!r})")


class NonFiniteValueError(PipelineError):
    """A derived value is NaN/inf (e.g. zero population). Row-scoped."""

    def __init__(self, county: object, state: object, field_name: str, value: object = None):
        self.county = county
        self.state = state
        self.field_name = field_name
        self.value = value
        super().__init__(f"{county}, {state}: non-finite {field_name} ({value!r})")


@dataclass
class DataQualityIssue:
    stage: str
    kind: str
    county: object
    state: object
    field: str
    value: object
    message: str


@dataclass
class DataQualityLog:
    """Accumulates row-scoped defects so data loss stays observable."""

    issues: List[DataQualityIssue] = field(default_factory=list)

    def record(self, stage: str, err: PipelineError) -> None:
        self.issues.append(DataQualityIssue(
            stage=stage,
            kind=type(err).__name__,
            county=getattr(err, "county", None),
            state=getattr(err, "state", None),
            field=getattr(err, "field_name", ""),
            value=getattr(err, "value", None),
            message=str(err),
        ))

    def __len__(self) -> int:
        return len(self.issues)

    def summary(self) -> Dict[str, int]:
        """Return counts keyed by '<stage>:<kind>'."""
        out: Dict[str, int] = {}
        for issue in self.issues:
            key = f"{issue.stage}:{issue.kind}"
            out[key] = out.get(key, 0) + 1
        return out

    def to_frame(self) -> pd.DataFrame:
        cols = ["stage", "kind", "county", "state", "field", "value", "message"]
        if not self.issues:
            return pd.DataFrame(columns=cols)
        return pd.DataFrame([vars(i) for i in self.issues], columns=cols)
