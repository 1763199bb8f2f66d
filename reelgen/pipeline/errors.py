"""
Pipeline failure kinds.

Every stage raises one of these; the orchestrator lets the first one abort
the run and the routes map `kind` onto an HTTP status.
"""


class PipelineError(Exception):
    """Base exception for pipeline failures."""

    kind = "pipeline"

    def __init__(self, message: str, stage: str = ""):
        self.message = message
        self.stage = stage
        prefix = f"[{stage}] " if stage else ""
        super().__init__(f"{prefix}{message}")

    def to_dict(self) -> dict:
        return {"kind": self.kind, "error": str(self)}


class ValidationError(PipelineError):
    """Bad or missing input. Raised before any backend is called."""

    kind = "validation"


class UpstreamError(PipelineError):
    """A backend (text, speech, video or storage) failed or answered nonsense."""

    kind = "upstream"

    def __init__(self, message: str, stage: str = "", status_code: int | None = None):
        super().__init__(message, stage)
        self.status_code = status_code


class PipelineTimeout(PipelineError):
    """A bounded operation ran past its wall-clock budget."""

    kind = "timeout"
