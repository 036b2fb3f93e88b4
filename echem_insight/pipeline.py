"""
echem_insight.pipeline
~~~~~~~~~~~~~~~~~~~~~~
Ordered, reconfigurable sequence of transform steps.

A :class:`Pipeline` owns its steps: they are stored by id with a separate
order list, so updates and toggles address a step by id while execution
follows the list order.  :meth:`Pipeline.execute` never mutates the
configuration and never raises for bad data; failures come back on the
:class:`PipelineResult`.

Pipelines serialize to a plain record, ``{"steps": [{"id", "kind",
"parameters", "enabled"}, ...]}``, validated with pydantic on the way in.
Re-running a deserialized pipeline reproduces the original output bit for
bit.
"""

from __future__ import annotations

import copy
import json
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional, Union

import numpy as np
import yaml
from pydantic import BaseModel, Field

from .errors import InvalidSeries, StepConfigurationError
from .series import Series
from .transforms import StepKind, apply_step, parse_kind, validate_parameters

logger = logging.getLogger(__name__)

ParameterValue = Union[bool, int, float, str]


# ------------------------------------------------------------------
# Serialization records
# ------------------------------------------------------------------


class StepRecord(BaseModel):
    """Serialized form of a single :class:`TransformStep`."""

    id: str
    kind: str
    parameters: dict[str, ParameterValue] = Field(default_factory=dict)
    enabled: bool = True


class PipelineRecord(BaseModel):
    """Serialized form of a whole :class:`Pipeline`."""

    steps: list[StepRecord] = Field(default_factory=list)


# ------------------------------------------------------------------
# Steps and results
# ------------------------------------------------------------------


@dataclass
class TransformStep:
    """One configured operator.

    *kind* is kept as the raw string so that records naming a kind this
    version does not know survive a load/save round trip; such steps are
    reported and skipped at execution time.
    """

    id: str
    kind: str
    parameters: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True

    @property
    def label(self) -> str:
        try:
            return StepKind(self.kind).label
        except ValueError:
            return self.kind

    def to_record(self) -> StepRecord:
        return StepRecord(
            id=self.id,
            kind=self.kind,
            parameters=dict(self.parameters),
            enabled=self.enabled,
        )

    @classmethod
    def from_record(cls, record: StepRecord) -> "TransformStep":
        return cls(
            id=record.id,
            kind=record.kind,
            parameters=dict(record.parameters),
            enabled=record.enabled,
        )


@dataclass(frozen=True)
class StepIssue:
    """A step that was passed through instead of applied."""

    step_id: str
    kind: str
    reason: str


@dataclass
class PipelineResult:
    """Outcome of :meth:`Pipeline.execute`.

    Attributes
    ----------
    series : Series or None
        Transformed series, or *None* when :attr:`error` is set.
    applied_steps : list[TransformStep]
        Snapshots of the steps that ran, in run order.
    issues : list[StepIssue]
        Enabled steps that were passed through (unknown kind, unusable
        parameters, numeric failure).
    error : InvalidSeries or None
        Set when the input, or an intermediate result, was unusable.
    """

    series: Optional[Series]
    applied_steps: list[TransformStep] = field(default_factory=list)
    issues: list[StepIssue] = field(default_factory=list)
    error: Optional[InvalidSeries] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ------------------------------------------------------------------
# Pipeline
# ------------------------------------------------------------------


def _new_step_id() -> str:
    return f"step-{uuid.uuid4().hex[:12]}"


class Pipeline:
    """Ordered collection of :class:`TransformStep` objects.

    Examples
    --------
    >>> from echem_insight import Pipeline, Series
    >>> pipeline = Pipeline()
    >>> norm_id = pipeline.add("normalize")
    >>> smooth_id = pipeline.add("smooth", {"window": 3})
    >>> result = pipeline.execute(Series([0, 1, 2, 3, 4], [0, 10, 0, 10, 0]))
    >>> result.ok
    True
    >>> [step.kind for step in result.applied_steps]
    ['normalize', 'smooth']
    """

    def __init__(self) -> None:
        self._steps: dict[str, TransformStep] = {}
        self._order: list[str] = []

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[TransformStep]:
        return iter(self.steps)

    @property
    def steps(self) -> list[TransformStep]:
        """Copies of the steps in execution order."""
        return [copy.deepcopy(self._steps[step_id]) for step_id in self._order]

    def get(self, step_id: str) -> TransformStep:
        return copy.deepcopy(self._lookup(step_id))

    def _lookup(self, step_id: str) -> TransformStep:
        try:
            return self._steps[step_id]
        except KeyError:
            raise KeyError(f"No step with id {step_id!r}") from None

    # --- configuration ---------------------------------------------------

    def add(
        self,
        kind: "StepKind | str",
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Append a step of *kind*, merging *parameters* over the kind's
        defaults, and return its new id.

        Raises
        ------
        StepConfigurationError
            For an unknown kind or invalid parameters.
        """
        kind = parse_kind(kind)
        params = validate_parameters(kind, parameters)
        step = TransformStep(id=_new_step_id(), kind=kind.value, parameters=params)
        self._steps[step.id] = step
        self._order.append(step.id)
        logger.debug("Added %s step %s", kind.value, step.id)
        return step.id

    def remove(self, step_id: str) -> None:
        self._lookup(step_id)
        del self._steps[step_id]
        self._order.remove(step_id)

    def toggle(self, step_id: str) -> bool:
        """Flip a step's enabled flag and return the new value."""
        step = self._lookup(step_id)
        step.enabled = not step.enabled
        return step.enabled

    def update(self, step_id: str, parameters: Mapping[str, Any]) -> None:
        """Merge *parameters* into a step's existing parameters.

        The step is left untouched when validation fails.
        """
        step = self._lookup(step_id)
        merged = {**step.parameters, **dict(parameters)}
        step.parameters = validate_parameters(step.kind, merged)

    def reorder(self, from_index: int, to_index: int) -> None:
        """Move the step at *from_index* so that it ends up at *to_index*."""
        size = len(self._order)
        for index in (from_index, to_index):
            if not 0 <= index < size:
                raise IndexError(f"Step index {index} out of range for {size} step(s)")
        step_id = self._order.pop(from_index)
        self._order.insert(to_index, step_id)

    move = reorder

    def clear(self) -> None:
        self._steps.clear()
        self._order.clear()

    # --- execution -------------------------------------------------------

    def execute(self, series: Series) -> PipelineResult:
        """Run every enabled step in order against *series*.

        Disabled steps are skipped.  Steps that cannot run (unknown kind,
        empty or rejected custom expression, numeric failure) pass their
        input through unchanged and are reported in
        :attr:`PipelineResult.issues`.  An empty input, or a step leaving
        too few points for the next one, ends execution with
        :attr:`PipelineResult.error` set.
        """
        if len(series) == 0:
            error = InvalidSeries("Cannot execute a pipeline on an empty series")
            logger.warning("%s", error)
            return PipelineResult(series=None, error=error)

        current = series
        applied: list[TransformStep] = []
        issues: list[StepIssue] = []

        for step_id in self._order:
            step = self._steps[step_id]
            if not step.enabled:
                continue
            try:
                current = apply_step(step.kind, current, step.parameters)
            except InvalidSeries as exc:
                logger.warning("Step %s (%s) failed: %s", step.id, step.kind, exc)
                return PipelineResult(
                    series=None, applied_steps=applied, issues=issues, error=exc
                )
            except (StepConfigurationError, ValueError, ArithmeticError, np.linalg.LinAlgError) as exc:
                logger.warning("Skipping step %s (%s): %s", step.id, step.kind, exc)
                issues.append(StepIssue(step_id=step.id, kind=step.kind, reason=str(exc)))
                continue
            applied.append(copy.deepcopy(step))

        return PipelineResult(series=current, applied_steps=applied, issues=issues)

    # --- serialization ---------------------------------------------------

    def to_record(self) -> PipelineRecord:
        return PipelineRecord(steps=[self._steps[i].to_record() for i in self._order])

    def to_dict(self) -> dict:
        return self.to_record().model_dump()

    def to_json(self, **kwargs: Any) -> str:
        return self.to_record().model_dump_json(**kwargs)

    @classmethod
    def from_record(cls, record: "PipelineRecord | Mapping[str, Any]") -> "Pipeline":
        """Rebuild a pipeline from a record or an equivalent mapping.

        Step ids, order, parameters and enabled flags are restored as-is;
        parameters are not re-validated so that a stored configuration is
        reproduced exactly, problems surfacing as issues at execution.

        Raises
        ------
        pydantic.ValidationError
            If the record is structurally malformed.
        ValueError
            If two steps share an id.
        """
        if not isinstance(record, PipelineRecord):
            record = PipelineRecord.model_validate(record)
        pipeline = cls()
        for step_record in record.steps:
            if step_record.id in pipeline._steps:
                raise ValueError(f"Duplicate step id {step_record.id!r}")
            step = TransformStep.from_record(step_record)
            pipeline._steps[step.id] = step
            pipeline._order.append(step.id)
        return pipeline

    @classmethod
    def from_json(cls, data: "str | bytes") -> "Pipeline":
        return cls.from_record(PipelineRecord.model_validate_json(data))


# ------------------------------------------------------------------
# File persistence
# ------------------------------------------------------------------

_YAML_SUFFIXES = (".yaml", ".yml")


def save_pipeline(pipeline: Pipeline, path: "str | Path") -> None:
    """Write *pipeline* to *path* as YAML (``.yaml``/``.yml``) or JSON."""
    path = Path(path)
    data = pipeline.to_dict()
    with open(path, "w", encoding="utf-8") as f:
        if path.suffix.lower() in _YAML_SUFFIXES:
            yaml.safe_dump(data, f, sort_keys=False)
        else:
            json.dump(data, f, indent=2)


def load_pipeline(path: "str | Path") -> Pipeline:
    """Read a pipeline previously written by :func:`save_pipeline`."""
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        if path.suffix.lower() in _YAML_SUFFIXES:
            data = yaml.safe_load(f) or {}
        else:
            data = json.load(f)
    return Pipeline.from_record(data)
