"""kopf handlers that drive Cluster reconciliation.

kopf watches ``clusters.core.arlon.io``, runs at most one handler per
Cluster at a time (different Clusters run concurrently on its worker
pool) and re-invokes a handler that raised :class:`kopf.TemporaryError`
once the error's delay has passed.  Every handler runs
:meth:`ClusterReconciler.reconcile` and translates the result:

* ``requeue_after`` becomes ``TemporaryError(delay=requeue_after)``;
* ``requeue`` and :class:`ClusterStoreError` retry with a delay that
  doubles with kopf's retry count (write conflicts retry after a short
  fixed delay);
* ``progressed`` runs the next pass at once, because kopf does not report
  our own finalizer and status writes as changes.

Deletion is guarded by the controller's own finalizer, so the delete
handler is optional and kopf adds no finalizer of its own.
"""

from __future__ import annotations

import functools
import logging
import threading
from typing import Any, Optional

import kopf
from kubernetes import client, config

from arlon_ctl.api.models import API_GROUP, API_VERSION, CLUSTER_PLURAL
from arlon_ctl.argocd.client import ArgocdClient
from arlon_ctl.argocd.repocreds import get_repo_creds
from arlon_ctl.basecluster.validate import validate_git_dir
from arlon_ctl.config.models import ControllerConfig
from arlon_ctl.controller.reconciler import (
    ClusterReconciler,
    ReconcileCancelled,
    ReconcileResult,
)
from arlon_ctl.controller.store import ClusterStore, ClusterStoreError

logger = logging.getLogger(__name__)

ANNOTATION_PREFIX = API_GROUP
CONFLICT_RETRY_DELAY_SECONDS = 5.0
BACKOFF_BASE_SECONDS = 1.0
BACKOFF_MAX_SECONDS = 300.0


def load_kube_config(kubeconfig: Optional[str] = None) -> None:
    """In-cluster service account first, then a kubeconfig file."""
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def backoff_delay(retry: int) -> float:
    """Per-Cluster exponential backoff from kopf's retry count."""
    return min(BACKOFF_BASE_SECONDS * (2 ** retry), BACKOFF_MAX_SECONDS)


def run_passes(
    reconciler: ClusterReconciler,
    namespace: str,
    name: str,
    *,
    retry: int = 0,
    stopping: Optional[threading.Event] = None,
) -> Optional[ReconcileResult]:
    """Reconcile until the Cluster settles; raise to ask for a revisit.

    Returns the last result, or ``None`` when the pass was cancelled.
    """
    while True:
        try:
            result = reconciler.reconcile(namespace, name, cancel=stopping)
        except ReconcileCancelled:
            logger.info("Reconcile of %s/%s cancelled", namespace, name)
            return None
        except ClusterStoreError as exc:
            delay = CONFLICT_RETRY_DELAY_SECONDS if exc.conflict else backoff_delay(retry)
            raise kopf.TemporaryError(str(exc), delay=delay) from exc

        if result.requeue_after is not None:
            raise kopf.TemporaryError(
                result.message or "revisit", delay=result.requeue_after,
            )
        if result.requeue:
            raise kopf.TemporaryError(
                result.message or "requeue", delay=backoff_delay(retry),
            )
        if not result.progressed:
            return result


# ── Operator lifecycle ──────────────────────────────────────────────────────


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **_: Any) -> None:
    # handler progress lives in annotations; status belongs to the reconciler
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(
        prefix=ANNOTATION_PREFIX,
    )
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(
        prefix=ANNOTATION_PREFIX,
        key="last-handled-configuration",
    )
    settings.execution.max_workers = memo.workers
    logger.info(
        "Starting cluster controller (namespace=%s, workers=%d)",
        memo.namespace or "<all>",
        memo.workers,
    )


@kopf.on.login()
def login(**_: Any) -> kopf.ConnectionInfo:
    """Hand kopf the configuration :func:`load_kube_config` loaded."""
    cfg = client.Configuration.get_default_copy()
    header = (
        cfg.get_api_key_with_prefix("BearerToken")
        or cfg.get_api_key_with_prefix("authorization")
    )
    scheme: Optional[str] = None
    token: Optional[str] = None
    if header:
        parts = header.split(" ", 1)
        if len(parts) == 2:
            scheme, token = parts
        else:
            token = parts[0]
    return kopf.ConnectionInfo(
        server=cfg.host,
        ca_path=cfg.ssl_ca_cert,
        insecure=not cfg.verify_ssl,
        username=cfg.username or None,
        password=cfg.password or None,
        scheme=scheme,
        token=token,
        certificate_path=cfg.cert_file,
        private_key_path=cfg.key_file,
    )


@kopf.on.cleanup()
def stop_reconciles(memo: kopf.Memo, **_: Any) -> None:
    logger.info("Stopping cluster controller")
    memo.stopping.set()


# ── Cluster handlers ────────────────────────────────────────────────────────


@kopf.on.resume(API_GROUP, API_VERSION, CLUSTER_PLURAL)
@kopf.on.create(API_GROUP, API_VERSION, CLUSTER_PLURAL)
@kopf.on.update(API_GROUP, API_VERSION, CLUSTER_PLURAL)
def reconcile_cluster(name: str, namespace: str, memo: kopf.Memo, retry: int = 0, **_: Any) -> None:
    """Executes when a Cluster appears, changes, or the operator resumes."""
    run_passes(memo.reconciler, namespace, name, retry=retry, stopping=memo.stopping)


@kopf.on.delete(API_GROUP, API_VERSION, CLUSTER_PLURAL, optional=True)
def finalize_cluster(name: str, namespace: str, memo: kopf.Memo, retry: int = 0, **_: Any) -> None:
    """Executes while a Cluster marked for deletion still holds our finalizer."""
    run_passes(memo.reconciler, namespace, name, retry=retry, stopping=memo.stopping)


# ── Entry point ─────────────────────────────────────────────────────────────


class ClusterManager:
    """Runs the kopf operator around one :class:`ClusterReconciler`."""

    def __init__(
        self,
        reconciler: ClusterReconciler,
        *,
        namespace: Optional[str] = None,
        workers: int = 2,
    ) -> None:
        self.reconciler = reconciler
        self.namespace = namespace
        self.workers = workers
        self.stopping = threading.Event()

    @classmethod
    def from_config(cls, cfg: ControllerConfig) -> "ClusterManager":
        """Wire the real Kubernetes and Argo CD adapters from *cfg*."""
        load_kube_config(cfg.kubeconfig)
        core_v1 = client.CoreV1Api()
        reconciler = ClusterReconciler(
            store=ClusterStore(client.CustomObjectsApi()),
            argocd=ArgocdClient.from_config(cfg),
            repo_creds=functools.partial(get_repo_creds, core_v1, cfg.argocd_namespace),
            template_validator=validate_git_dir,
            config=cfg,
        )
        return cls(reconciler, namespace=cfg.watch_namespace, workers=cfg.workers)

    def memo(self) -> kopf.Memo:
        """Shared state every handler receives as ``memo``."""
        return kopf.Memo(
            reconciler=self.reconciler,
            stopping=self.stopping,
            namespace=self.namespace,
            workers=self.workers,
        )

    def run(self) -> None:
        """Block until kopf exits (SIGINT/SIGTERM)."""
        kopf.run(
            standalone=True,
            clusterwide=self.namespace is None,
            namespaces=[self.namespace] if self.namespace else (),
            memo=self.memo(),
        )
