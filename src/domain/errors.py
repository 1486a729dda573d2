"""Pipeline error taxonomy.

Only ``EvidenceUnavailable`` and plain ``PipelineError`` are expected to escape a
node handler; the rest are either converted into fallback values by the phase
that raised them or reported as structured results.
"""

SNIPPET_LENGTH = 500


class PipelineError(Exception):
    """Base class for every error raised by the generation pipeline."""


class MalformedOutput(PipelineError):
    """Generated text did not contain a usable structured value."""

    def __init__(self, message: str, snippet: str = "") -> None:
        super().__init__(message)
        self.snippet = snippet[:SNIPPET_LENGTH]


class EvidenceUnavailable(PipelineError):
    """A required evidence source or its credential is missing."""


class ProviderError(PipelineError):
    """The text-generation provider rejected a request or sent an unreadable reply."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConsensusNotReached(PipelineError):
    """Weighted voting did not produce enough tools; triggers mediation."""

    def __init__(self, passing: int, required: int) -> None:
        super().__init__(f"Only {passing} tools cleared the vote threshold (need {required})")
        self.passing = passing
        self.required = required


class ArtifactInvalid(PipelineError):
    """Test harness rejected the artifact."""

    def __init__(self, tools_passed: int, tools_found: int, iterations: int) -> None:
        super().__init__(
            f"Failed to converge after {iterations} iterations. "
            f"Best attempt: {tools_passed}/{tools_found} tools working."
        )
        self.tools_passed = tools_passed
        self.tools_found = tools_found
        self.iterations = iterations


class SandboxViolation(PipelineError):
    """Sandboxed code hit a resource limit or a denied operation."""

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind  # "timeout" | "memory" | "policy"


class PipelineAborted(PipelineError):
    """A node handler failed with an unrecoverable fault."""

    def __init__(self, node: str, cause: BaseException) -> None:
        super().__init__(str(cause) or type(cause).__name__)
        self.node = node
        self.cause = cause
