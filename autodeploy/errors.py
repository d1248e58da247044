"""Error taxonomy for the autodeploy pipeline.

Each failure family carries a ``kind`` so operators can route alerts without
parsing messages. Errors abort the pipeline of the single event that raised
them and never touch other in-flight events.
"""

from __future__ import annotations

import enum
import typing as typ

if typ.TYPE_CHECKING:
    import datetime as dt


class AutodeployError(Exception):
    """Base class for all autodeploy errors."""


class NormalizationErrorKind(enum.StrEnum):
    """Why an inbound payload could not be normalized."""

    UNSUPPORTED_EVENT = "unsupported_event"
    MALFORMED_PAYLOAD = "malformed_payload"


class NormalizationError(AutodeployError):
    """Raised when a webhook payload cannot become a ``GitEvent``.

    Attributes
    ----------
    kind
        Failure kind.
    field
        Dotted path of the offending field for malformed payloads.

    """

    def __init__(
        self,
        message: str,
        *,
        kind: NormalizationErrorKind,
        field: str | None = None,
    ) -> None:
        """Initialise with a message, kind and optional field path."""
        self.kind = kind
        self.field = field
        super().__init__(message)

    @classmethod
    def unsupported_event(cls, event_type: object) -> NormalizationError:
        """Return an error for an event type outside the supported set."""
        return cls(
            f"Unsupported event type: {event_type!r}",
            kind=NormalizationErrorKind.UNSUPPORTED_EVENT,
        )

    @classmethod
    def malformed(cls, field: str, detail: str) -> NormalizationError:
        """Return an error for a missing or ill-typed field."""
        return cls(
            f"Malformed payload at {field}: {detail}",
            kind=NormalizationErrorKind.MALFORMED_PAYLOAD,
            field=field,
        )


class ResolutionStage(enum.StrEnum):
    """User hook that was being resolved."""

    TARGET = "target"
    RUNNER = "runner"


class ResolutionErrorKind(enum.StrEnum):
    """Why a user hook did not produce a usable result."""

    TIMEOUT = "timeout"
    USER_FUNCTION_THREW = "user_function_threw"
    INVALID_RESULT = "invalid_result"


class ResolutionError(AutodeployError):
    """Raised when a user-supplied hook fails, stalls, or returns garbage."""

    def __init__(
        self,
        message: str,
        *,
        stage: ResolutionStage,
        kind: ResolutionErrorKind,
    ) -> None:
        """Initialise with the hook stage and failure kind."""
        self.stage = stage
        self.kind = kind
        super().__init__(message)

    @classmethod
    def timed_out(cls, stage: ResolutionStage, timeout: float) -> ResolutionError:
        """Return an error for a hook exceeding the resolution timeout."""
        return cls(
            f"{stage} hook did not finish within {timeout:g}s",
            stage=stage,
            kind=ResolutionErrorKind.TIMEOUT,
        )

    @classmethod
    def hook_raised(
        cls, stage: ResolutionStage, exc: BaseException
    ) -> ResolutionError:
        """Return an error wrapping an exception raised by a hook."""
        return cls(
            f"{stage} hook raised {type(exc).__name__}: {exc}",
            stage=stage,
            kind=ResolutionErrorKind.USER_FUNCTION_THREW,
        )

    @classmethod
    def invalid_result(cls, stage: ResolutionStage, detail: str) -> ResolutionError:
        """Return an error for a hook result of the wrong shape."""
        return cls(
            f"{stage} hook returned an invalid result: {detail}",
            stage=stage,
            kind=ResolutionErrorKind.INVALID_RESULT,
        )


class ValidationErrorKind(enum.StrEnum):
    """Runner specification validation failures."""

    INCOMPATIBLE_ARCH_COMPUTE = "incompatible_arch_compute"
    TIMEOUT_EXCEEDS_CEILING = "timeout_exceeds_ceiling"
    INVALID_TIMEOUT = "invalid_timeout"
    INVALID_VALUE = "invalid_value"


class ValidationError(AutodeployError):
    """Raised when a runner specification violates engine constraints."""

    def __init__(self, message: str, *, kind: ValidationErrorKind) -> None:
        """Initialise with a message and validation kind."""
        self.kind = kind
        super().__init__(message)

    @classmethod
    def incompatible(cls, architecture: str, compute: str) -> ValidationError:
        """Return an error for an unsupported architecture/compute pair."""
        return cls(
            f"compute {compute!r} is not available for architecture "
            f"{architecture!r}",
            kind=ValidationErrorKind.INCOMPATIBLE_ARCH_COMPUTE,
        )

    @classmethod
    def timeout_exceeds_ceiling(
        cls, timeout: dt.timedelta | str, ceiling: dt.timedelta
    ) -> ValidationError:
        """Return an error for a timeout above the engine ceiling."""
        return cls(
            f"timeout of {timeout} exceeds the engine ceiling of {ceiling}",
            kind=ValidationErrorKind.TIMEOUT_EXCEEDS_CEILING,
        )

    @classmethod
    def invalid_timeout(cls, raw: object) -> ValidationError:
        """Return an error for an unparseable or non-positive timeout."""
        return cls(
            f"timeout must look like '<n> minutes' or '<n> hours', got {raw!r}",
            kind=ValidationErrorKind.INVALID_TIMEOUT,
        )

    @classmethod
    def invalid_value(
        cls, field: str, value: object, allowed: typ.Iterable[str]
    ) -> ValidationError:
        """Return an error for a value outside an enumerated set."""
        choices = ", ".join(sorted(allowed))
        return cls(
            f"{field} must be one of {choices}; got {value!r}",
            kind=ValidationErrorKind.INVALID_VALUE,
        )


class ProvisioningErrorKind(enum.StrEnum):
    """Runner provisioning failures."""

    PROVIDER_FAILURE = "provider_failure"


class ProvisioningError(AutodeployError):
    """Raised when the provider cannot create a runner machine.

    The pool never retries on its own; callers may retry with backoff.
    """

    def __init__(
        self,
        message: str,
        *,
        key: str,
        kind: ProvisioningErrorKind = ProvisioningErrorKind.PROVIDER_FAILURE,
    ) -> None:
        """Initialise with the runner key that failed to provision."""
        self.key = key
        self.kind = kind
        super().__init__(message)

    @classmethod
    def provider_failure(cls, key: str, exc: BaseException) -> ProvisioningError:
        """Return an error wrapping a provider exception."""
        return cls(
            f"Provisioning runner {key[:12]} failed: {type(exc).__name__}: {exc}",
            key=key,
        )


class RunnerStateError(AutodeployError):
    """Raised when a pool operation does not match the record's state."""

    def __init__(self, key: str, reason: str) -> None:
        """Initialise with the runner key and the reason."""
        self.key = key
        self.reason = reason
        super().__init__(f"Runner {key[:12]}: {reason}")


class DispatchErrorKind(enum.StrEnum):
    """Build dispatch failures."""

    START_FAILURE = "start_failure"
    TIMED_OUT = "timed_out"
    REMOTE_FAILURE = "remote_failure"


class DispatchError(AutodeployError):
    """Describes why a build job did not succeed."""

    def __init__(self, message: str, *, job_id: str, kind: DispatchErrorKind) -> None:
        """Initialise with the job identifier and failure kind."""
        self.job_id = job_id
        self.kind = kind
        super().__init__(message)

    @classmethod
    def start_failure(cls, job_id: str, exc: BaseException) -> DispatchError:
        """Return an error for a build the engine refused to start."""
        return cls(
            f"Build {job_id} failed to start: {type(exc).__name__}: {exc}",
            job_id=job_id,
            kind=DispatchErrorKind.START_FAILURE,
        )

    @classmethod
    def timed_out(cls, job_id: str, timeout: dt.timedelta) -> DispatchError:
        """Return an error for a build cancelled after its timeout."""
        return cls(
            f"Build {job_id} exceeded its timeout of {timeout} and was cancelled",
            job_id=job_id,
            kind=DispatchErrorKind.TIMED_OUT,
        )

    @classmethod
    def remote_failure(cls, job_id: str, reason: str | None) -> DispatchError:
        """Return an error for a build reported failed by the engine."""
        detail = reason or "no reason reported"
        return cls(
            f"Build {job_id} failed remotely: {detail}",
            job_id=job_id,
            kind=DispatchErrorKind.REMOTE_FAILURE,
        )


class ConfigError(AutodeployError):
    """Raised when environment configuration is invalid."""

    @classmethod
    def invalid_number(cls, env_var: str, raw: str) -> ConfigError:
        """Return an error for a non-positive or non-numeric setting."""
        return cls(f"{env_var} must be a positive number, got: {raw!r}")

    @classmethod
    def invalid_hooks_path(cls, raw: str) -> ConfigError:
        """Return an error for a hooks path that is not ``module:attribute``."""
        return cls(f"AUTODEPLOY_HOOKS must look like 'module:attribute', got: {raw!r}")

    @classmethod
    def hooks_not_found(cls, raw: str, reason: str) -> ConfigError:
        """Return an error for a hooks object that cannot be imported."""
        return cls(f"Cannot load autodeploy hooks from {raw!r}: {reason}")


__all__ = [
    "AutodeployError",
    "ConfigError",
    "DispatchError",
    "DispatchErrorKind",
    "NormalizationError",
    "NormalizationErrorKind",
    "ProvisioningError",
    "ProvisioningErrorKind",
    "ResolutionError",
    "ResolutionErrorKind",
    "ResolutionStage",
    "RunnerStateError",
    "ValidationError",
    "ValidationErrorKind",
]
