"""Structured lifecycle logging for the autodeploy pipeline.

Every event is a single ``[event.type] key=value ...`` line emitted through
femtologging so log aggregators can parse it without a schema. Failures carry
an ``error_category`` used for alert routing.
"""

from __future__ import annotations

import enum
import typing as typ

from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError

from autodeploy.errors import (
    ConfigError,
    DispatchError,
    NormalizationError,
    ProvisioningError,
    ResolutionError,
    RunnerStateError,
    ValidationError,
)
from autodeploy.logging import (
    get_logger,
    log_error,
    log_info,
    log_warning,
    quote_log_value,
)

if typ.TYPE_CHECKING:
    import datetime as dt

    from autodeploy.builds.models import BuildJob, BuildStatus
    from autodeploy.events import GitEvent
    from autodeploy.runners.models import RunnerHandle

logger = get_logger(__name__)


class AutodeployEventType(enum.StrEnum):
    """Structured log event identifiers."""

    EVENT_RECEIVED = "autodeploy.event.received"
    EVENT_SKIPPED = "autodeploy.event.skipped"
    EVENT_FAILED = "autodeploy.event.failed"
    RUNNER_PROVISIONED = "autodeploy.runner.provisioned"
    RUNNER_CHECKED_OUT = "autodeploy.runner.checked_out"
    RUNNER_PROVISION_FAILED = "autodeploy.runner.provision_failed"
    RUNNER_REAPED = "autodeploy.runner.reaped"
    RUNNER_TEARDOWN_FAILED = "autodeploy.runner.teardown_failed"
    RUNNER_STORE_FAILED = "autodeploy.runner.store_failed"
    BUILD_TRANSITION = "autodeploy.build.transition"
    BUILD_COMPLETED = "autodeploy.build.completed"


class ErrorCategory(enum.StrEnum):
    """Alert routing categories."""

    CLIENT_ERROR = "client_error"
    USER_FUNCTION = "user_function"
    TRANSIENT = "transient"
    BUILD_FAILURE = "build_failure"
    CONFIGURATION = "configuration"
    INVARIANT = "invariant"
    DATABASE_CONNECTIVITY = "database_connectivity"
    DATABASE_ERROR = "database_error"
    UNKNOWN = "unknown"


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (NormalizationError, ErrorCategory.CLIENT_ERROR),
    (ValidationError, ErrorCategory.CLIENT_ERROR),
    (ResolutionError, ErrorCategory.USER_FUNCTION),
    (ProvisioningError, ErrorCategory.TRANSIENT),
    (DispatchError, ErrorCategory.BUILD_FAILURE),
    (ConfigError, ErrorCategory.CONFIGURATION),
    (RunnerStateError, ErrorCategory.INVARIANT),
    (OperationalError, ErrorCategory.DATABASE_CONNECTIVITY),
    (InterfaceError, ErrorCategory.DATABASE_CONNECTIVITY),
    (SQLAlchemyError, ErrorCategory.DATABASE_ERROR),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Return the alert category for ``exc``."""
    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category
    return ErrorCategory.UNKNOWN


def _error_kind(exc: BaseException) -> str:
    kind = getattr(exc, "kind", None)
    return str(kind) if kind is not None else "-"


class AutodeployEventLogger:
    """Emit pipeline, pool, and build lifecycle events."""

    def log_event_received(self, event: GitEvent) -> None:
        """Log a normalized event entering the pipeline."""
        log_info(
            logger,
            "[%s] event_type=%s repo=%s commit=%s sender=%s",
            AutodeployEventType.EVENT_RECEIVED,
            event.type,
            event.repo.slug,
            event.commit.id,
            event.sender.username,
        )

    def log_event_skipped(self, event: GitEvent) -> None:
        """Log an event the target hook chose not to deploy."""
        log_info(
            logger,
            "[%s] event_type=%s repo=%s commit=%s",
            AutodeployEventType.EVENT_SKIPPED,
            event.type,
            event.repo.slug,
            event.commit.id,
        )

    def log_event_failed(
        self,
        *,
        description: str,
        error: BaseException,
        duration: dt.timedelta,
    ) -> None:
        """Log a pipeline that aborted with ``error``."""
        log_error(
            logger,
            "[%s] event=%s duration_seconds=%.3f error_type=%s error_kind=%s "
            "error_category=%s error_message=%s",
            AutodeployEventType.EVENT_FAILED,
            quote_log_value(description),
            duration.total_seconds(),
            type(error).__name__,
            _error_kind(error),
            categorize_error(error),
            quote_log_value(error),
            exc_info=error,
        )

    def log_runner_provisioned(
        self, handle: RunnerHandle, duration: dt.timedelta
    ) -> None:
        """Log a freshly created runner machine."""
        log_info(
            logger,
            "[%s] runner_key=%s machine_id=%s architecture=%s compute=%s "
            "duration_seconds=%.3f",
            AutodeployEventType.RUNNER_PROVISIONED,
            handle.key[:12],
            handle.machine_id,
            handle.spec.architecture,
            handle.spec.compute,
            duration.total_seconds(),
        )

    def log_runner_checked_out(self, handle: RunnerHandle) -> None:
        """Log reuse of an existing ready runner."""
        log_info(
            logger,
            "[%s] runner_key=%s machine_id=%s",
            AutodeployEventType.RUNNER_CHECKED_OUT,
            handle.key[:12],
            handle.machine_id,
        )

    def log_runner_provision_failed(self, key: str, error: BaseException) -> None:
        """Log a provider failure while creating a runner."""
        log_error(
            logger,
            "[%s] runner_key=%s error_type=%s error_message=%s",
            AutodeployEventType.RUNNER_PROVISION_FAILED,
            key[:12],
            type(error).__name__,
            quote_log_value(error),
            exc_info=error,
        )

    def log_runner_reaped(self, handle: RunnerHandle, idle: dt.timedelta) -> None:
        """Log an idle runner being torn down."""
        log_info(
            logger,
            "[%s] runner_key=%s machine_id=%s idle_seconds=%.0f",
            AutodeployEventType.RUNNER_REAPED,
            handle.key[:12],
            handle.machine_id,
            idle.total_seconds(),
        )

    def log_runner_teardown_failed(self, key: str, error: BaseException) -> None:
        """Log a teardown that will be retried on the next sweep."""
        log_warning(
            logger,
            "[%s] runner_key=%s error_type=%s error_message=%s",
            AutodeployEventType.RUNNER_TEARDOWN_FAILED,
            key[:12],
            type(error).__name__,
            quote_log_value(error),
            exc_info=error,
        )

    def log_runner_store_failed(
        self, key: str, operation: str, error: BaseException
    ) -> None:
        """Log a failure mirroring the runner table to its store."""
        log_warning(
            logger,
            "[%s] runner_key=%s operation=%s error_category=%s error_message=%s",
            AutodeployEventType.RUNNER_STORE_FAILED,
            key[:12],
            operation,
            categorize_error(error),
            quote_log_value(error),
            exc_info=error,
        )

    def log_build_transition(
        self, job_id: str, stage: str, status: BuildStatus
    ) -> None:
        """Log a build job entering ``status``."""
        log_info(
            logger,
            "[%s] job_id=%s stage=%s status=%s",
            AutodeployEventType.BUILD_TRANSITION,
            job_id,
            stage,
            status,
        )

    def log_build_completed(self, job: BuildJob) -> None:
        """Log a build job's terminal state."""
        duration = (
            (job.finished_at - job.started_at).total_seconds()
            if job.finished_at is not None
            else 0.0
        )
        template = (
            "[%s] job_id=%s stage=%s machine_id=%s status=%s "
            "duration_seconds=%.3f error_kind=%s"
        )
        args = (
            AutodeployEventType.BUILD_COMPLETED,
            job.job_id,
            job.target.stage,
            job.runner.machine_id,
            job.status,
            duration,
            _error_kind(job.error) if job.error is not None else "-",
        )
        if job.error is None:
            log_info(logger, template, *args)
        else:
            log_warning(logger, template, *args)
