"""Error taxonomy for export jobs."""

from typing import Dict, Optional


class RenderExportError(Exception):
    stage = "export"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class ConfigError(RenderExportError):
    stage = "config"


class GeometryError(RenderExportError):
    stage = "geometry"


class InvalidGeometryError(GeometryError):
    pass


class NavigationError(RenderExportError):
    stage = "navigate"


class IdleTimeoutError(RenderExportError):
    stage = "network_idle"


class ConvergenceTimeoutError(RenderExportError):
    """Raised when tracked element counts never reach their expected values.

    ``expected`` and ``actual`` map each unconverged dimension to its counts
    as last observed before the deadline.
    """

    stage = "convergence"

    def __init__(self, expected: Dict[str, int], actual: Dict[str, int], waited_ms: float):
        self.expected = dict(expected)
        self.actual = dict(actual)
        self.waited_ms = waited_ms
        parts = ", ".join(
            f"{name}: expected={self.expected[name]} actual={self.actual.get(name, 0)}"
            for name in self.expected
        )
        super().__init__(f"Counts did not converge within {waited_ms:.0f}ms ({parts})")

    @property
    def counts(self) -> Dict[str, int]:
        """Single-dimension summary, e.g. {"expected": 5, "actual": 3}."""
        if len(self.expected) != 1:
            raise ValueError("counts is only defined for a single unconverged dimension")
        name = next(iter(self.expected))
        return {"expected": self.expected[name], "actual": self.actual.get(name, 0)}


class PageQueryError(RenderExportError):
    stage = "query"


class CaptureError(RenderExportError):
    stage = "capture"


class AssemblyError(RenderExportError):
    stage = "assemble"


def describe_error(exc: BaseException) -> str:
    """Render an exception with its full ``__cause__`` chain."""
    text = f"{type(exc).__name__}: {exc}"
    seen = {id(exc)}
    cause = exc.__cause__ or exc.__context__
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        text += f"\n[Caused by] {type(cause).__name__}: {cause}"
        cause = cause.__cause__ or cause.__context__
    return text
