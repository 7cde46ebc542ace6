"""Submission orchestration: ConfigMap, then Pod, then Service."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .. import _constants as c
from ..config.loader import ConfigError
from ..config.schema import SparkApplication
from ..k8s.client import K8sError, ResourceClient
from ..k8s.reconcile import Reconciler, ReconcileResult
from ..k8s.wait import CONFLICT_RETRY, SERVICE_VERIFY, RetryPolicy, deadline_after
from .configmap import build_config_map
from .driver import build_driver_pod
from .naming import SubmissionContext, generate_application_id, generate_submission_id
from .properties import build_properties, rewrite_local_dirs
from .service import build_driver_service
from .template import driver_template

logger = logging.getLogger(__name__)


class SubmissionError(Exception):
    """Raised when a submission step fails.

    ``results`` holds the objects reconciled before the failure; they are
    left in place for the next attempt.
    """

    def __init__(self, message: str, step: str = "", results: list[ReconcileResult] | None = None):
        super().__init__(message)
        self.step = step
        self.results = results or []


@dataclass
class SubmissionManifests:
    """Manifests synthesized for one submission, in apply order."""

    context: SubmissionContext
    config_map: dict[str, Any]
    pod: dict[str, Any]
    service: dict[str, Any]

    def ordered(self) -> list[dict[str, Any]]:
        return [self.config_map, self.pod, self.service]


@dataclass
class SubmissionResult:
    """Outcome of a successful submission."""

    application_id: str
    submission_id: str
    namespace: str
    driver_pod_name: str
    service_name: str
    config_map_name: str
    results: list[ReconcileResult] = field(default_factory=list)


def assign_identifiers(
    app: SparkApplication, clock: Callable[[], float] = time.time
) -> tuple[str, str]:
    """Write the application and submission IDs and the submit time to ``app.status``.

    Values already recorded in the status are kept, so repeating a submission
    of the same object reproduces the same manifests.
    """
    status = app.status
    if status.submission_time is None:
        status.submission_time = clock()
    if not status.spark_application_id:
        status.spark_application_id = generate_application_id()
    if not status.submission_id:
        status.submission_id = generate_submission_id()
    return status.spark_application_id, status.submission_id


def synthesize(
    app: SparkApplication,
    clock: Callable[[], float] = time.time,
    environ: Mapping[str, str] | None = None,
    defaults_file: str | Path | None = c.SPARK_DEFAULTS_FILE,
) -> SubmissionManifests:
    """Build the ConfigMap, Pod and Service manifests without touching the cluster.

    Raises:
        ConfigError: If a setting cannot be interpreted or the pod template
            cannot be loaded
    """
    environ = os.environ if environ is None else environ
    app_id, submission_id = assign_identifiers(app, clock)
    submitted_at = app.status.submission_time

    def submit_clock() -> float:
        return submitted_at

    ctx = SubmissionContext.for_application(app, app_id, submission_id, submit_clock)

    local_dirs = rewrite_local_dirs(app)
    properties = build_properties(
        app,
        ctx,
        local_dirs=local_dirs,
        clock=submit_clock,
        environ=environ,
        defaults_file=defaults_file,
    )
    template = driver_template(app.spark_conf, environ)
    return SubmissionManifests(
        context=ctx,
        config_map=build_config_map(app, ctx, properties),
        pod=build_driver_pod(app, ctx, local_dirs, template, environ),
        service=build_driver_service(app, ctx),
    )


class SparkSubmitter:
    """Submits a SparkApplication by creating its driver objects directly."""

    def __init__(
        self,
        client: ResourceClient,
        clock: Callable[[], float] = time.time,
        environ: Mapping[str, str] | None = None,
        defaults_file: str | Path | None = c.SPARK_DEFAULTS_FILE,
        retry_policy: RetryPolicy = CONFLICT_RETRY,
        verify_policy: RetryPolicy = SERVICE_VERIFY,
    ):
        self.reconciler = Reconciler(client, retry_policy, verify_policy)
        self.clock = clock
        self.environ = environ
        self.defaults_file = defaults_file

    def submit(
        self,
        app: SparkApplication | None,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> SubmissionResult:
        """Reconcile the ConfigMap, driver Pod and Service for ``app``.

        Args:
            app: Application to submit; its status receives the IDs
            timeout: Overall time budget in seconds
            cancel: Event that aborts the submission when set

        Returns:
            SubmissionResult with one ReconcileResult per object

        Raises:
            SubmissionError: If synthesis or any API step fails
        """
        if app is None:
            raise SubmissionError("SparkApplication must not be None", step="validate")

        deadline = deadline_after(timeout)
        try:
            manifests = synthesize(app, self.clock, self.environ, self.defaults_file)
        except ConfigError as e:
            raise SubmissionError(f"Invalid configuration for {app.name}: {e}", "synthesize") from e

        ctx = manifests.context
        logger.info(
            "Submitting %s as %s (driver %s/%s)",
            app.name,
            ctx.app_id,
            ctx.namespace,
            ctx.driver_pod_name,
        )

        results: list[ReconcileResult] = []
        for manifest in manifests.ordered():
            kind, name = manifest["kind"], manifest["metadata"]["name"]
            try:
                results.append(self.reconciler.apply(manifest, deadline, cancel))
            except K8sError as e:
                raise SubmissionError(
                    f"Failed to reconcile {kind} {ctx.namespace}/{name}: {e}",
                    step=kind,
                    results=results,
                ) from e

        return SubmissionResult(
            application_id=ctx.app_id,
            submission_id=ctx.submission_id,
            namespace=ctx.namespace,
            driver_pod_name=ctx.driver_pod_name,
            service_name=ctx.service_name,
            config_map_name=ctx.config_map_name,
            results=results,
        )
