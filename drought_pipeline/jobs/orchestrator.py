"""
Run drivers. Every run walks a list of entities (stations, facilities or
regions); a failure inside one entity is logged, recorded and the run moves
on. Only a failure while obtaining the entity list aborts the run.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from drought_pipeline.extract.planner import StepUnit, plan_fetch
from drought_pipeline.extract.source_adapter import SourceAdapter
from drought_pipeline.utils.errors import ErrorKind, PipelineError, unwrap

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EntityStage(str, Enum):
    PLANNING = "planning"
    FETCHING = "fetching"
    COLLAPSING = "collapsing"
    INTERPOLATING = "interpolating"
    AGGREGATING = "aggregating"
    EMITTING = "emitting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class EntityOutcome:
    entity_id: str
    stage: EntityStage = EntityStage.PLANNING
    skipped: bool = False
    records: int = 0
    failed_stage: Optional[EntityStage] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""

    def advance(self, stage: EntityStage):
        self.stage = stage

    def skip(self, reason: str):
        self.skipped = True
        self.message = reason
        self.stage = EntityStage.DONE

    def fail(self, kind: ErrorKind, message: str):
        self.failed_stage = self.stage
        self.stage = EntityStage.FAILED
        self.error_kind = kind
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "stage": self.stage.value,
            "skipped": self.skipped,
            "records": self.records,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
        }


@dataclass
class RunSummary:
    pipeline: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    outcomes: List[EntityOutcome] = field(default_factory=list)
    aborted: bool = False
    abort_reason: str = ""

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.stage is EntityStage.DONE and not o.skipped)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.stage is EntityStage.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pipeline": self.pipeline,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "aborted": self.aborted,
            "abort_reason": self.abort_reason,
            "failures": [o.to_dict() for o in self.outcomes if o.stage is EntityStage.FAILED],
        }

    def log(self, log: logging.Logger):
        if self.aborted:
            log.error(f"🛑 [{self.pipeline}] Run aborted: {self.abort_reason}")
            return
        log.info(
            f"🏁 [{self.pipeline}] Succeeded: {self.succeeded} | "
            f"Failed: {self.failed} | Skipped: {self.skipped}"
        )
        for outcome in self.outcomes:
            if outcome.stage is EntityStage.FAILED:
                log.warning(
                    f"   - {outcome.entity_id} failed while {outcome.failed_stage.value} "
                    f"({outcome.error_kind.value}): {outcome.message}"
                )


def run_entities(
    pipeline: str,
    entities_provider: Callable[[], Iterable[T]],
    handle: Callable[[T, EntityOutcome], None],
    key: Callable[[T], str] = str,
    log: Optional[logging.Logger] = None
) -> RunSummary:
    """
    Shared per-entity loop.

    `handle` drives one entity, advancing `outcome.stage` as it goes and
    raising on failure. PipelineErrors are recorded with their kind; any
    other exception is recorded as a reconstruction failure with a traceback.
    """
    log = log or logger
    summary = RunSummary(pipeline=pipeline)
    log.info(f"🚀 [{pipeline}] Starting run")

    try:
        entities = list(entities_provider())
    except Exception as e:
        log.exception(f"❌ [{pipeline}] Could not obtain the entity list")
        summary.aborted = True
        summary.abort_reason = str(e)
        summary.finished_at = datetime.now(timezone.utc)
        return summary

    log.info(f"📋 [{pipeline}] {len(entities)} entit{'y' if len(entities) == 1 else 'ies'} to process")

    for entity in entities:
        outcome = EntityOutcome(entity_id=key(entity))
        summary.outcomes.append(outcome)
        try:
            handle(entity, outcome)
            if outcome.stage is not EntityStage.FAILED:
                outcome.advance(EntityStage.DONE)
        except PipelineError as e:
            outcome.fail(e.kind, e.message)
            log.error(f"❌ [{pipeline}] {outcome.entity_id} failed while {outcome.failed_stage.value}: {e.message}")
        except Exception as e:
            outcome.fail(ErrorKind.RECONSTRUCTION, f"unexpected error: {e}")
            log.exception(f"❌ [{pipeline}] {outcome.entity_id} failed unexpectedly while {outcome.failed_stage.value}")

    summary.finished_at = datetime.now(timezone.utc)
    summary.log(log)
    return summary


def run_collection(
    pipeline: str,
    entities_provider: Callable[[], Iterable[str]],
    cursor_store,
    adapter: SourceAdapter,
    writer,
    step: StepUnit,
    default_lookback: timedelta,
    now: Optional[Callable[[], datetime]] = None,
    delay_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    log: Optional[logging.Logger] = None
) -> RunSummary:
    """
    Incremental collection: plan -> fetch -> persist, for each entity.

    Args:
        cursor_store: object with get_last_cursor(entity_id) -> Result.
        writer: object with write(points) -> Result.
        now: clock returning naive local datetimes (cursors are stored naive).
        delay_seconds: pause between two network fetches.
    """
    log = log or logger
    now = now or datetime.now
    fetches = {"count": 0}

    def handle(entity_id: str, outcome: EntityOutcome):
        outcome.advance(EntityStage.PLANNING)
        cursor = unwrap(cursor_store.get_last_cursor(entity_id))
        window = plan_fetch(entity_id, cursor, step, default_lookback, now())
        if window is None:
            outcome.skip("up to date")
            log.info(f"⏭️ [{pipeline}] {entity_id} is up to date (cursor {cursor})")
            return

        outcome.advance(EntityStage.FETCHING)
        if fetches["count"] and delay_seconds > 0:
            sleep(delay_seconds)
        fetches["count"] += 1
        points = unwrap(adapter.fetch(entity_id, window.start, window.end))

        outcome.advance(EntityStage.EMITTING)
        outcome.records = unwrap(writer.write(points))
        log.info(f"✅ [{pipeline}] {entity_id}: {len(points)} reading(s) for {window.start} -> {window.end}")

    return run_entities(pipeline, entities_provider, handle, log=log)


def run_reconstruction(
    pipeline: str,
    targets_provider: Callable[[], Iterable[T]],
    process: Callable[[T, EntityOutcome], None],
    key: Callable[[T], str],
    log: Optional[logging.Logger] = None
) -> RunSummary:
    """
    Full rebuild of every target series. `process` walks the
    fetch -> collapse -> interpolate -> aggregate -> emit stages.
    """
    return run_entities(pipeline, targets_provider, process, key=key, log=log)
