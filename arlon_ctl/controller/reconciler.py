"""Cluster reconciliation state machine.

One pass moves a ``Cluster`` at most one step closer to its goal::

    ""  ──finalizer──▶  ""  ──template ok──▶  initializing
        ──platform app──▶  initializing  ──workload app──▶  created

Every branch returns a :class:`ReconcileResult`; failures of external
calls (credential lookup, template validation, Argo CD) set the state to
``retrying`` with a diagnostic message and ask for a revisit after the
fixed retry delay.  Failures to persist the Cluster itself raise
:class:`~arlon_ctl.controller.store.ClusterStoreError` so the scheduler
retries the event.

The reconciler never sleeps; delays are returned to the caller.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from arlon_ctl.api.models import Cluster, ClusterState
from arlon_ctl.argocd.apps import (
    build_cluster_app,
    build_platform_app,
    create_cluster_app,
    create_platform_app,
    platform_app_name,
)
from arlon_ctl.argocd.client import (
    ApplicationClient,
    ApplicationNotFoundError,
    ArgocdError,
    ArgocdStatusError,
    ArgocdStatusMissingError,
)
from arlon_ctl.config.models import ControllerConfig
from arlon_ctl.controller.store import ClusterStoreError

logger = logging.getLogger(__name__)

#: (repo_url) -> credentials
RepoCredsLookup = Callable[[str], Any]
#: (creds, url, revision, path) -> inner cluster name
TemplateValidator = Callable[[Any, str, str, str], str]


class ReconcileCancelled(Exception):
    """The scheduler asked the pass to stop before its next external call."""


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one pass.

    Attributes:
        state: ``status.state`` written by this pass, ``None`` if untouched.
        message: ``status.message`` written by this pass.
        requeue_after: Revisit the Cluster after this many seconds.
        requeue: Revisit with the scheduler's own backoff.
        progressed: The pass persisted a step and the next pass can run
            at once; the scheduler does not see our own finalizer and
            status writes as changes.
    """

    state: Optional[str] = None
    message: str = ""
    requeue_after: Optional[float] = None
    requeue: bool = False
    progressed: bool = False


class ClusterReconciler:
    """Drives a Cluster toward ``created``.

    Collaborators are injected so any scheduler (or a test) can drive
    :meth:`reconcile` without process-wide state.
    """

    def __init__(
        self,
        store: Any,
        argocd: Any,
        repo_creds: RepoCredsLookup,
        template_validator: TemplateValidator,
        config: Optional[ControllerConfig] = None,
    ) -> None:
        self.store = store
        self.argocd = argocd
        self.repo_creds = repo_creds
        self.template_validator = template_validator
        self.config = config or ControllerConfig()

    # -- entry point ------------------------------------------------------

    def reconcile(
        self,
        namespace: str,
        name: str,
        cancel: Optional[threading.Event] = None,
    ) -> ReconcileResult:
        logger.debug("reconciling cluster %s/%s", namespace, name)
        try:
            cr = self.store.get(namespace, name)
        except ClusterStoreError as exc:
            logger.info("unable to get cluster (%s) ... requeuing", exc)
            return ReconcileResult(requeue=True, message=str(exc))
        if cr is None:
            logger.info("cluster %s/%s is gone -- ok", namespace, name)
            return ReconcileResult()

        if cr.is_being_deleted():
            return self.reconcile_delete(cr, cancel)

        if cr.status.state == ClusterState.CREATED.value:
            logger.debug("cluster %s is already created", cr.key)
            return ReconcileResult()

        # The finalizer must be durable before any side effect.
        if not cr.has_finalizer():
            cr.add_finalizer()
            cr.status.observed_generation = cr.metadata.generation
            try:
                self.store.update(cr)
                self.store.update_status(cr)
            except ClusterStoreError:
                logger.error("failed to patch cluster %s to add finalizer", cr.key)
                raise
            logger.info("added finalizer to cluster %s", cr.key)
            return ReconcileResult(progressed=True)

        if not cr.status.inner_cluster_name:
            return self._validate_template(cr, cancel)

        self._check_cancelled(cancel)
        try:
            apps = self.argocd.new_application_client()
        except Exception as exc:
            return self._retry(cr, f"failed to get argocd application client: {exc}")
        with apps:
            return self._reconcile_apps(cr, apps, cancel)

    # -- steps ------------------------------------------------------------

    def _validate_template(
        self, cr: Cluster, cancel: Optional[threading.Event],
    ) -> ReconcileResult:
        ctmpl = cr.spec.cluster_template
        logger.info("validating cluster template for %s ...", cr.key)
        self._check_cancelled(cancel)
        try:
            creds = self.repo_creds(ctmpl.url)
        except Exception as exc:
            return self._retry(cr, f"failed to get repo creds: {exc}")
        self._check_cancelled(cancel)
        try:
            inner_cluster_name = self.template_validator(
                creds, ctmpl.url, ctmpl.revision, ctmpl.path,
            )
        except Exception as exc:
            return self._retry(cr, f"failed to validate cluster template: {exc}")
        cr.status.inner_cluster_name = inner_cluster_name
        return self.update_state(
            cr,
            ClusterState.INITIALIZING,
            "cluster template validation successful",
            progressed=True,
        )

    def _lookup_failure(self, apps: ApplicationClient, name: str) -> tuple:
        """Return ``(exists, failure_message)`` for application *name*."""
        try:
            apps.get(name)
        except ApplicationNotFoundError:
            return False, ""
        except ArgocdStatusMissingError:
            return False, "failed to get grpc status from argocd API"
        except ArgocdStatusError as exc:
            return False, f"unexpected grpc status: {exc.code}"
        return True, ""

    def _reconcile_apps(
        self,
        cr: Cluster,
        apps: ApplicationClient,
        cancel: Optional[threading.Event],
    ) -> ReconcileResult:
        cfg = self.config

        # platform application
        self._check_cancelled(cancel)
        exists, failure = self._lookup_failure(apps, platform_app_name(cr.name))
        if failure:
            return self._retry(cr, failure)
        if not exists:
            chart = cr.spec.arlon_helm_chart or cfg.default_arlon_chart
            cas_enabled = cr.spec.autoscaler is not None
            app = build_platform_app(
                cr.name,
                chart,
                argocd_ns=cfg.argocd_namespace,
                arlon_ns=cfg.arlon_namespace,
                inner_cluster_name=cr.status.inner_cluster_name if cas_enabled else "",
                cas_mgmt_cluster_host=(
                    cr.spec.autoscaler.mgmt_cluster_host if cas_enabled else ""
                ),
                cas_enabled=cas_enabled,
            )
            self._check_cancelled(cancel)
            try:
                create_platform_app(apps, app)
            except ArgocdError as exc:
                return self._retry(cr, f"failed to create arlon application: {exc}")
            return self.update_state(
                cr,
                ClusterState.INITIALIZING,
                "arlon application created",
                requeue_after=cfg.settle_delay_seconds,
            )

        # workload application
        self._check_cancelled(cancel)
        exists, failure = self._lookup_failure(apps, cr.name)
        if failure:
            return self._retry(cr, failure)
        if exists:
            return self.update_state(
                cr,
                ClusterState.CREATED,
                "cluster app already exists -- ok",
                requeue_after=cfg.settle_delay_seconds,
            )
        app = build_cluster_app(
            cr.name,
            cr.status.inner_cluster_name,
            cr.spec.cluster_template,
            argocd_ns=cfg.argocd_namespace,
        )
        self._check_cancelled(cancel)
        try:
            create_cluster_app(apps, app)
        except ArgocdError as exc:
            return self._retry(cr, f"failed to create cluster application: {exc}")
        return self.update_state(
            cr,
            ClusterState.CREATED,
            "cluster creation successful",
            requeue_after=cfg.retry_delay_seconds,
        )

    # -- deletion ---------------------------------------------------------

    def reconcile_delete(
        self, cr: Cluster, cancel: Optional[threading.Event] = None,
    ) -> ReconcileResult:
        """Delete both applications, then release the finalizer.

        Without our finalizer there is nothing left to guard, so the pass
        returns at once and the API server is free to remove the object.
        """
        if not cr.has_finalizer():
            logger.info("cluster %s deleted without finalizer -- ok", cr.key)
            return ReconcileResult()

        self._check_cancelled(cancel)
        try:
            apps = self.argocd.new_application_client()
        except Exception as exc:
            return self._retry(cr, f"failed to get argocd application client: {exc}")
        with apps:
            for app_name in (cr.name, platform_app_name(cr.name)):
                self._check_cancelled(cancel)
                try:
                    apps.delete(app_name, cascade=True)
                except ApplicationNotFoundError:
                    logger.debug("application %s already gone", app_name)
                except ArgocdError as exc:
                    return self._retry(cr, f"failed to delete application {app_name}: {exc}")

        cr.remove_finalizer()
        try:
            self.store.update(cr)
        except ClusterStoreError as exc:
            if exc.status == 404:
                return ReconcileResult()
            logger.error("failed to remove finalizer from cluster %s", cr.key)
            raise
        logger.info("released finalizer of cluster %s", cr.key)
        return ReconcileResult()

    # -- status -----------------------------------------------------------

    def update_state(
        self,
        cr: Cluster,
        state: ClusterState,
        msg: str,
        *,
        requeue_after: Optional[float] = None,
        progressed: bool = False,
    ) -> ReconcileResult:
        """Persist ``status.state``/``status.message`` and build the result."""
        cr.status.state = state.value
        cr.status.message = msg
        logger.info("%s ... setting state to '%s'", msg, state.value)
        try:
            self.store.update_status(cr)
        except ClusterStoreError:
            logger.error("unable to update status of cluster %s", cr.key)
            raise
        return ReconcileResult(
            state=state.value,
            message=msg,
            requeue_after=requeue_after,
            progressed=progressed,
        )

    def _retry(self, cr: Cluster, msg: str) -> ReconcileResult:
        return self.update_state(
            cr,
            ClusterState.RETRYING,
            msg,
            requeue_after=self.config.retry_delay_seconds,
        )

    @staticmethod
    def _check_cancelled(cancel: Optional[threading.Event]) -> None:
        if cancel is not None and cancel.is_set():
            raise ReconcileCancelled("reconcile cancelled")
