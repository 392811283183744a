"""Tests for profile lookup, deletion and materialization into git."""

from __future__ import annotations

import base64
import threading
from types import SimpleNamespace
from unittest import mock

import pytest
from kubernetes.client.rest import ApiException

from arlon_ctl.api.models import BundleType, Profile
from arlon_ctl.profile.bundles import (
    BundleLookupError,
    bundle_from_secret,
    get_bundles_from_profile,
)
from arlon_ctl.profile.profiles import (
    ProfileLookupError,
    delete_profile,
    load_profile,
    profile_from_configmap,
)

from conftest import requires_git

GUESTBOOK = "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: guestbook\n"


def _secret(name, *, btype="static", data=None, annotations=None, arlon_type="bundle"):
    return SimpleNamespace(
        metadata=SimpleNamespace(
            name=name,
            labels={"arlon-type": arlon_type, "bundle-type": btype},
            annotations=annotations or {},
        ),
        data={"data": base64.b64encode(data.encode()).decode()} if data else None,
    )


def _core(secrets) -> mock.MagicMock:
    core = mock.MagicMock()

    def read(name, ns):
        if name not in secrets:
            raise ApiException(status=404, reason="Not Found")
        return secrets[name]

    core.read_namespaced_secret.side_effect = read
    return core


# ---------------------------------------------------------------------------
# Bundles
# ---------------------------------------------------------------------------


class TestBundles:
    def test_static(self):
        b = bundle_from_secret(_secret("guestbook", data=GUESTBOOK))
        assert b.type == BundleType.STATIC
        assert b.data == GUESTBOOK

    def test_dynamic(self):
        b = bundle_from_secret(_secret(
            "mon", btype="dynamic",
            annotations={
                "arlon.io/repo-url": "https://github.com/org/mon.git",
                "arlon.io/repo-path": "deploy",
                "arlon.io/repo-revision": "v2",
            },
        ))
        assert b.type == BundleType.DYNAMIC
        assert (b.repo_url, b.repo_path, b.repo_revision) == ("https://github.com/org/mon.git", "deploy", "v2")

    def test_not_a_bundle(self):
        with pytest.raises(BundleLookupError, match="not a bundle"):
            bundle_from_secret(_secret("x", arlon_type="profile"))

    def test_unknown_type(self):
        with pytest.raises(BundleLookupError, match="unknown type"):
            bundle_from_secret(_secret("x", btype="weird"))

    def test_profile_order_and_namespace(self):
        core = _core({"a": _secret("a", data="a: 1\n"), "b": _secret("b", data="b: 1\n")})
        bundles = get_bundles_from_profile(Profile(name="p", bundles=["b", "a"]), core, "arlon")
        assert [b.name for b in bundles] == ["b", "a"]
        core.read_namespaced_secret.assert_any_call("b", "arlon")

    def test_missing_bundle(self):
        with pytest.raises(BundleLookupError, match="failed to get bundle nope"):
            get_bundles_from_profile(Profile(name="p", bundles=["nope"]), _core({}), "arlon")


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class TestProfiles:
    def _cm(self):
        return SimpleNamespace(
            metadata=SimpleNamespace(name="p1", namespace="arlon"),
            data={
                "bundles": "guestbook, mon,,",
                "description": "demo",
                "repo-url": "https://github.com/org/profiles.git",
                "repo-path": "profiles/p1",
                "repo-branch": "main",
            },
        )

    def test_from_configmap(self):
        p = profile_from_configmap(self._cm())
        assert p.bundles == ["guestbook", "mon"]
        assert p.repo_path == "profiles/p1"
        assert p.repo_branch == "main"

    def test_load(self):
        core = mock.MagicMock()
        core.read_namespaced_config_map.return_value = self._cm()
        assert load_profile(core, "p1", "arlon").name == "p1"
        core.read_namespaced_config_map.assert_called_once_with("p1", "arlon")

    def test_load_missing(self):
        core = mock.MagicMock()
        core.read_namespaced_config_map.side_effect = ApiException(status=404, reason="Not Found")
        with pytest.raises(ProfileLookupError, match="arlon/p1"):
            load_profile(core, "p1", "arlon")

    def test_delete(self):
        api = mock.MagicMock()
        delete_profile(api, "arlon", "p1")
        api.delete_namespaced_custom_object.assert_called_once_with(
            "core.arlon.io", "v1", "arlon", "profiles", "p1",
        )

    def test_delete_error_propagates(self):
        api = mock.MagicMock()
        api.delete_namespaced_custom_object.side_effect = ApiException(status=404, reason="Not Found")
        with pytest.raises(ApiException):
            delete_profile(api, "arlon", "p1")


# ---------------------------------------------------------------------------
# Materialization into git
# ---------------------------------------------------------------------------


@requires_git
class TestCreateInGit:
    @pytest.fixture(autouse=True)
    def _no_creds_lookup(self):
        with mock.patch("arlon_ctl.profile.git.get_repo_creds", return_value=None) as m:
            self.creds = m
            yield

    def _run(self, remote, core, bundles=("guestbook",)):
        from arlon_ctl.profile.git import create_in_git

        profile = Profile(name="p1", bundles=list(bundles))
        return create_in_git(core, profile, "argocd", "arlon", str(remote), "profiles/p1", "main")

    def test_push_then_unchanged(self, remote_factory):
        import git

        remote = remote_factory({"README.md": "profiles\n"})
        core = _core({"guestbook": _secret("guestbook", data=GUESTBOOK)})

        assert self._run(remote, core) is True
        bare = git.Repo(str(remote))
        first = bare.commit("main")
        files = {b.path for b in first.tree.traverse() if b.type == "blob"}
        assert "profiles/p1/Chart.yaml" in files
        assert "profiles/p1/values.yaml" in files
        assert "profiles/p1/templates/guestbook.yaml" in files
        assert "profiles/p1/bundles/guestbook/guestbook.yaml" in files
        app = (first.tree / "profiles/p1/templates/guestbook.yaml").data_stream.read().decode()
        assert "{{ .Values.clusterName }}-guestbook" in app
        self.creds.assert_called_with(core, "argocd", str(remote))

        # identical inputs: no commit, no push
        assert self._run(remote, core) is False
        assert git.Repo(str(remote)).commit("main").hexsha == first.hexsha

    def test_bundle_lookup_failure(self, remote_factory):
        from arlon_ctl.profile.git import ProfileSyncError

        remote = remote_factory({"README.md": "x\n"})
        with pytest.raises(ProfileSyncError, match="^failed to get bundles"):
            self._run(remote, _core({}))

    def test_clone_failure(self, tmp_path):
        from arlon_ctl.profile.git import ProfileSyncError

        core = _core({"guestbook": _secret("guestbook", data=GUESTBOOK)})
        with pytest.raises(ProfileSyncError, match="^failed to clone repo"):
            self._run(tmp_path / "missing.git", core)

    def test_render_failure_pushes_nothing(self, remote_factory):
        import git

        from arlon_ctl.profile.git import ProfileSyncError

        remote = remote_factory({"README.md": "x\n"})
        before = git.Repo(str(remote)).commit("main").hexsha
        core = _core({"empty": _secret("empty")})
        with pytest.raises(ProfileSyncError, match="^failed to process bundles"):
            self._run(remote, core, bundles=("empty",))
        assert git.Repo(str(remote)).commit("main").hexsha == before

    def test_failed_run_keeps_working_tree(self, remote_factory, tmp_path):
        from arlon_ctl.profile.git import ProfileSyncError

        remote = remote_factory({"README.md": "x\n"})
        core = _core({"empty": _secret("empty")})
        with mock.patch("arlon_ctl.gitutils.repo.shutil.rmtree") as rmtree, \
                mock.patch("arlon_ctl.gitutils.repo.GitAuth.discard") as discard:
            with pytest.raises(ProfileSyncError):
                self._run(remote, core, bundles=("empty",))
        rmtree.assert_not_called()
        discard.assert_called_once_with()


# ---------------------------------------------------------------------------
# Serialisation per repository branch
# ---------------------------------------------------------------------------


class TestBranchLock:
    URL = "https://git.example/profiles.git"

    @pytest.fixture
    def gate(self):
        """Replace the flow body with one that parks until released."""
        entered = threading.Semaphore(0)
        release = threading.Event()
        branches = []

        def body(core_v1, profile, argocd_ns, arlon_ns, repo_url, repo_path, repo_branch):
            branches.append(repo_branch)
            entered.release()
            release.wait(5)
            return True

        with mock.patch("arlon_ctl.profile.git._create_in_git", side_effect=body):
            yield SimpleNamespace(entered=entered, release=release, branches=branches)
        release.set()

    def _start(self, branch):
        from arlon_ctl.profile.git import create_in_git

        profile = Profile(name="p1", bundles=["guestbook"])
        t = threading.Thread(
            target=create_in_git,
            args=(None, profile, "argocd", "arlon", self.URL, "profiles/p1", branch),
            daemon=True,
        )
        t.start()
        return t

    def test_same_branch_waits(self, gate):
        first = self._start("main")
        assert gate.entered.acquire(timeout=5)
        second = self._start("main")
        assert not gate.entered.acquire(timeout=0.3)
        gate.release.set()
        assert gate.entered.acquire(timeout=5)
        first.join(5)
        second.join(5)
        assert gate.branches == ["main", "main"]

    def test_other_branch_runs_concurrently(self, gate):
        first = self._start("main")
        assert gate.entered.acquire(timeout=5)
        second = self._start("staging")
        assert gate.entered.acquire(timeout=5)
        assert sorted(gate.branches) == ["main", "staging"]
        gate.release.set()
        first.join(5)
        second.join(5)

    def test_lock_keyed_by_url_and_branch(self):
        from arlon_ctl.profile.git import _branch_lock

        assert _branch_lock(self.URL, "main") is _branch_lock(self.URL, "main")
        assert _branch_lock(self.URL, "main") is not _branch_lock(self.URL, "dev")
        assert _branch_lock(self.URL, "main") is not _branch_lock(self.URL + "x", "main")
