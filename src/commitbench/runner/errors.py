class ConfigError(ValueError):
    """Configuration file or settings record is invalid."""


class BenchError(RuntimeError):
    """Base class for failures raised by the benchmark pipeline."""


class GitCommandError(BenchError):
    """A git invocation exited non-zero or could not be spawned.

    Attributes:
        git_args: git arguments (without the leading ``git``).
        returncode: Exit status, or None when git never started.
        detail: Trimmed stderr/stdout of the failed command.
    """

    def __init__(self, git_args: list[str], *, returncode: int | None, detail: str = ""):
        suffix = f": {detail}" if detail else ""
        code = f"code {returncode}" if returncode is not None else "not started"
        super().__init__(f"git {' '.join(git_args)} failed ({code}){suffix}")
        self.git_args = git_args
        self.returncode = returncode
        self.detail = detail


class ResolutionError(BenchError):
    """A commit reference could not be turned into a concrete commit id."""

    def __init__(self, message: str, *, reference: str):
        super().__init__(message)
        self.reference = reference


class ResolutionTimeoutError(ResolutionError, TimeoutError):
    """Listing the remote refs did not finish within the timeout."""


class MaterializationError(BenchError):
    """Clone or checkout of a commit failed."""

    def __init__(self, message: str, *, commit_id: str):
        super().__init__(message)
        self.commit_id = commit_id


class BuildError(BenchError):
    """The build command exited non-zero or could not be spawned."""

    def __init__(self, message: str, *, returncode: int | None = None, detail: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.detail = detail


class NotBuiltError(BenchError):
    """The workspace or its build output is missing."""


class RunError(BenchError):
    """A warm-up or timed run exited non-zero or could not be spawned.

    ``run_index`` is None for the warm-up run, otherwise the 1-based run number.
    """

    def __init__(
        self,
        message: str,
        *,
        run_index: int | None = None,
        returncode: int | None = None,
        detail: str = "",
    ):
        super().__init__(message)
        self.run_index = run_index
        self.returncode = returncode
        self.detail = detail


class PipelineError(BenchError):
    """A commit failed at some stage; the whole run stops."""

    def __init__(self, *, stage: str, label: str, reference: str, cause: BaseException):
        super().__init__(f"{stage} failed for commit '{label}' ({reference}): {cause}")
        self.stage = stage
        self.label = label
        self.reference = reference
        self.cause = cause


def format_output_detail(stdout: str, stderr: str, *, limit: int = 2000) -> str:
    """Combine process output for error messages, keeping the tail."""
    stdout_text = (stdout or "").strip()
    stderr_text = (stderr or "").strip()
    if stderr_text and stdout_text and stdout_text != stderr_text:
        text = f"{stderr_text}\n{stdout_text}"
    else:
        text = stderr_text or stdout_text
    if len(text) > limit:
        text = "..." + text[-limit:]
    return text
