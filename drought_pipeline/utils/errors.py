"""
Error taxonomy shared by every layer of the pipeline.

Adapters and persistence gateways return `Ok` / `Err` values instead of
raising; the core transforms raise `ReconstructionError` directly. The
orchestrator turns either form into a per-entity failure and moves on.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    PARSE = "parse"
    RECONSTRUCTION = "reconstruction"
    PERSISTENCE = "persistence"


class PipelineError(Exception):
    """Base class for every failure the pipeline knows how to report."""
    kind: ErrorKind = ErrorKind.RECONSTRUCTION

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransportError(PipelineError):
    """Network / HTTP failure or a provider-level error response."""
    kind = ErrorKind.TRANSPORT


class ParseError(PipelineError):
    """Provider payload could not be decoded."""
    kind = ErrorKind.PARSE


class ReconstructionError(PipelineError):
    """Malformed input to a reconstruction step (bad range, bad weights, leap day)."""
    kind = ErrorKind.RECONSTRUCTION


class PersistenceError(PipelineError):
    """Database read/write failure."""
    kind = ErrorKind.PERSISTENCE


_EXCEPTIONS = {
    ErrorKind.TRANSPORT: TransportError,
    ErrorKind.PARSE: ParseError,
    ErrorKind.RECONSTRUCTION: ReconstructionError,
    ErrorKind.PERSISTENCE: PersistenceError,
}


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str

    @property
    def is_ok(self) -> bool:
        return False

    def to_exception(self) -> PipelineError:
        return _EXCEPTIONS[self.kind](self.message)


Result = Union[Ok[T], Err]


def unwrap(result: "Result[Any]") -> Any:
    """Returns the Ok payload, raising the matching PipelineError for an Err."""
    if isinstance(result, Err):
        raise result.to_exception()
    return result.value
