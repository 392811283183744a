"""Tests for the kopf handlers around ClusterReconciler."""

from __future__ import annotations

import threading
from unittest import mock

import kopf
import pytest

from arlon_ctl.controller import manager
from arlon_ctl.controller.manager import (
    ClusterManager,
    backoff_delay,
    finalize_cluster,
    reconcile_cluster,
    run_passes,
)
from arlon_ctl.controller.reconciler import ReconcileCancelled, ReconcileResult
from arlon_ctl.controller.store import ClusterStoreError


def _reconciler(*results):
    rec = mock.MagicMock()
    rec.reconcile.side_effect = list(results)
    return rec


def _memo(rec, **extra):
    return kopf.Memo(reconciler=rec, stopping=threading.Event(), namespace=None, workers=2, **extra)


# ---------------------------------------------------------------------------
# Result translation
# ---------------------------------------------------------------------------


class TestRunPasses:
    def test_settled_result_returns(self):
        rec = _reconciler(ReconcileResult())
        assert run_passes(rec, "arlon", "c1") == ReconcileResult()
        rec.reconcile.assert_called_once_with("arlon", "c1", cancel=None)

    def test_requeue_after_becomes_temporary_error(self):
        rec = _reconciler(ReconcileResult(state="retrying", message="failed to get repo creds: x", requeue_after=10.0))
        with pytest.raises(kopf.TemporaryError) as ei:
            run_passes(rec, "arlon", "c1")
        assert ei.value.delay == 10.0
        assert "failed to get repo creds" in str(ei.value)

    def test_progress_runs_next_pass_at_once(self):
        rec = _reconciler(
            ReconcileResult(progressed=True),
            ReconcileResult(state="initializing", progressed=True),
            ReconcileResult(state="initializing", message="arlon application created", requeue_after=2.0),
        )
        with pytest.raises(kopf.TemporaryError) as ei:
            run_passes(rec, "arlon", "c1")
        assert ei.value.delay == 2.0
        assert rec.reconcile.call_count == 3

    def test_requeue_backs_off_with_retry_count(self):
        rec = _reconciler(ReconcileResult(requeue=True))
        with pytest.raises(kopf.TemporaryError) as ei:
            run_passes(rec, "arlon", "c1", retry=3)
        assert ei.value.delay == backoff_delay(3) == 8.0

    def test_store_conflict_retries_quickly(self):
        rec = _reconciler(ClusterStoreError("conflict", status=409))
        with pytest.raises(kopf.TemporaryError) as ei:
            run_passes(rec, "arlon", "c1", retry=6)
        assert ei.value.delay == manager.CONFLICT_RETRY_DELAY_SECONDS

    def test_store_failure_backs_off(self):
        rec = _reconciler(ClusterStoreError("boom", status=500))
        with pytest.raises(kopf.TemporaryError) as ei:
            run_passes(rec, "arlon", "c1", retry=1)
        assert ei.value.delay == 2.0

    def test_backoff_is_capped(self):
        assert backoff_delay(40) == manager.BACKOFF_MAX_SECONDS

    def test_cancelled_is_not_retried(self):
        rec = _reconciler(ReconcileCancelled())
        assert run_passes(rec, "arlon", "c1") is None


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


class TestHandlers:
    def test_reconcile_cluster_passes_stop_event(self):
        rec = _reconciler(ReconcileResult())
        memo = _memo(rec)
        reconcile_cluster(name="c1", namespace="arlon", memo=memo, retry=0, body={})
        rec.reconcile.assert_called_once_with("arlon", "c1", cancel=memo.stopping)

    def test_finalize_cluster_reconciles_deletion(self):
        rec = _reconciler(ReconcileResult(state="retrying", requeue_after=10.0))
        with pytest.raises(kopf.TemporaryError):
            finalize_cluster(name="c1", namespace="arlon", memo=_memo(rec), retry=0)

    def test_cleanup_cancels_running_passes(self):
        memo = _memo(mock.MagicMock())
        manager.stop_reconciles(memo=memo)
        assert memo.stopping.is_set()

    def test_configure_keeps_progress_out_of_status(self):
        settings = kopf.OperatorSettings()
        manager.configure(settings=settings, memo=_memo(mock.MagicMock()), logger=mock.MagicMock())
        assert isinstance(settings.persistence.progress_storage, kopf.AnnotationsProgressStorage)
        assert isinstance(settings.persistence.diffbase_storage, kopf.AnnotationsDiffBaseStorage)
        assert settings.execution.max_workers == 2

    def test_login_uses_loaded_configuration(self):
        cfg = mock.MagicMock()
        cfg.host = "https://k8s:6443"
        cfg.ssl_ca_cert = "/ca.crt"
        cfg.verify_ssl = True
        cfg.username = ""
        cfg.password = ""
        cfg.cert_file = None
        cfg.key_file = None
        cfg.get_api_key_with_prefix.side_effect = lambda key: "Bearer t0k" if key == "BearerToken" else None
        with mock.patch.object(manager.client.Configuration, "get_default_copy", return_value=cfg):
            info = manager.login()
        assert info.server == "https://k8s:6443"
        assert info.ca_path == "/ca.crt"
        assert info.scheme == "Bearer"
        assert info.token == "t0k"
        assert info.insecure is False
        assert info.username is None


# ---------------------------------------------------------------------------
# ClusterManager
# ---------------------------------------------------------------------------


class TestClusterManager:
    def test_run_namespaced(self):
        mgr = ClusterManager(mock.MagicMock(), namespace="arlon", workers=4)
        with mock.patch.object(manager.kopf, "run") as run:
            mgr.run()
        kwargs = run.call_args.kwargs
        assert kwargs["standalone"] is True
        assert kwargs["clusterwide"] is False
        assert kwargs["namespaces"] == ["arlon"]
        memo = kwargs["memo"]
        assert memo.reconciler is mgr.reconciler
        assert memo.stopping is mgr.stopping
        assert memo.workers == 4

    def test_run_clusterwide(self):
        mgr = ClusterManager(mock.MagicMock())
        with mock.patch.object(manager.kopf, "run") as run:
            mgr.run()
        assert run.call_args.kwargs["clusterwide"] is True
        assert run.call_args.kwargs["namespaces"] == ()

    def test_from_config(self):
        from arlon_ctl.config import ControllerConfig

        cfg = ControllerConfig(workers=3, watch_namespace="arlon", kubeconfig="/k")
        with mock.patch("arlon_ctl.controller.manager.config") as kcfg, \
                mock.patch("arlon_ctl.controller.manager.client") as kclient:
            mgr = ClusterManager.from_config(cfg)
        kcfg.load_kube_config.assert_called_once_with(config_file="/k")
        assert mgr.workers == 3
        assert mgr.namespace == "arlon"
        assert mgr.reconciler.store.api is kclient.CustomObjectsApi.return_value
        assert mgr.reconciler.config is cfg


# ---------------------------------------------------------------------------
# Handler over the real reconciler
# ---------------------------------------------------------------------------


class TestHandlerFlow:
    def test_new_cluster_reaches_created(self):
        from test_reconciler import FakeArgocd, FakeStore, _cluster

        from arlon_ctl.controller.reconciler import ClusterReconciler

        store, argocd = FakeStore(), FakeArgocd()
        store.put(_cluster())
        memo = _memo(ClusterReconciler(store, argocd, lambda url: None, lambda *args: "capi-1"))

        # finalizer, template validation and platform app in one call
        with pytest.raises(kopf.TemporaryError) as ei:
            reconcile_cluster(name="c1", namespace="arlon", memo=memo, retry=0)
        assert ei.value.delay == 2.0
        assert argocd.creates == ["c1-arlon"]

        with pytest.raises(kopf.TemporaryError) as ei:
            reconcile_cluster(name="c1", namespace="arlon", memo=memo, retry=1)
        assert ei.value.delay == 10.0
        assert argocd.creates == ["c1-arlon", "c1"]

        reconcile_cluster(name="c1", namespace="arlon", memo=memo, retry=2)
        assert store.obj()["status"]["state"] == "created"
