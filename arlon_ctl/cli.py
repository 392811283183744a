"""CLI entry point for arlon-ctl, built on cli-core-yo.

Provides the ``controller``, ``gitrepo`` and ``profile`` command groups.

Usage::

    python -m arlon_ctl --help
    python -m arlon_ctl controller run --config /etc/arlon/controller.yaml
    python -m arlon_ctl gitrepo register https://github.com/org/repo.git
    python -m arlon_ctl profile delete my-profile --ns arlon
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

import typer
from cli_core_yo import output
from cli_core_yo.app import create_app
from cli_core_yo.runtime import _reset, initialize
from cli_core_yo.spec import CliSpec, XdgSpec

from arlon_ctl import ui

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# ── App definition ───────────────────────────────────────────────────────────

spec = CliSpec(
    prog_name="arlon-ctl",
    app_display_name="Arlon",
    dist_name="arlon-ctl",
    root_help=(
        "Declarative Kubernetes cluster lifecycle on top of Argo CD: "
        "cluster controller, git repository aliases and profiles."
    ),
    xdg=XdgSpec(app_dir_name="arlon"),
)

app = create_app(spec)

controller_app = typer.Typer(help="Run the cluster controller.", no_args_is_help=True)
gitrepo_app = typer.Typer(help="Manage git repository aliases.", no_args_is_help=True)
profile_app = typer.Typer(help="Manage profiles.", no_args_is_help=True)

app.add_typer(controller_app, name="controller")
app.add_typer(gitrepo_app, name="gitrepo")
app.add_typer(profile_app, name="profile")


# ── Root callback (global options) ───────────────────────────────────────────


@app.callback()
def _root_callback(
    json_flag: bool = typer.Option(
        False, "--json", "-j", help="Output as JSON."
    ),
) -> None:
    """Arlon control plane."""
    _reset()
    debug = os.environ.get("CLI_CORE_YO_DEBUG") == "1"
    xdg_paths = app._cli_core_yo_xdg_paths  # type: ignore[attr-defined]
    initialize(spec, xdg_paths, json_mode=json_flag, debug=debug)


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
    )


def _one_line(exc: Exception) -> str:
    from pydantic import ValidationError

    if isinstance(exc, ValidationError):
        return "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
            for err in exc.errors()
        )
    return " ".join(str(exc).split())


def _load_config(path: Optional[str]):
    """Load the controller config or exit 1 with a one-line error."""
    import yaml
    from pydantic import ValidationError

    from arlon_ctl.config.loader import load_config

    try:
        return load_config(path)
    except (ValidationError, yaml.YAMLError, OSError) as exc:
        output.error(f"Invalid controller config: {_one_line(exc)}")
        raise typer.Exit(1) from exc


def _kube_apis(kubeconfig: Optional[str]):
    from kubernetes import client

    from arlon_ctl.controller.manager import load_kube_config

    load_kube_config(kubeconfig)
    return client.CoreV1Api(), client.CustomObjectsApi()


# ── controller ───────────────────────────────────────────────────────────────


@controller_app.command("run")
def controller_run(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to controller config YAML.",
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", min=1, help="Number of reconcile workers.",
    ),
    namespace: Optional[str] = typer.Option(
        None, "--namespace", help="Watch only this namespace (default: all).",
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging."),
) -> None:
    """Watch Cluster resources and reconcile them until interrupted."""
    from arlon_ctl.controller.manager import ClusterManager

    _setup_logging(debug)
    cfg = _load_config(config)
    updates = {}
    if workers is not None:
        updates["workers"] = workers
    if namespace is not None:
        updates["watch_namespace"] = namespace
    if updates:
        cfg = cfg.model_copy(update=updates)

    ui.phase("CONTROLLER")
    ui.detail("argocd", f"{cfg.argocd_server} (ns {cfg.argocd_namespace})")
    ui.detail("namespace", cfg.watch_namespace or "<all>")
    ui.detail("workers", str(cfg.workers))

    try:
        manager = ClusterManager.from_config(cfg)
    except Exception as exc:
        output.error(f"Failed to start controller: {exc}")
        raise typer.Exit(1) from exc
    manager.run()
    raise typer.Exit(0)


@controller_app.command("config")
def controller_config(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to controller config YAML.",
    ),
    write: Optional[str] = typer.Option(
        None, "--write", help="Write the effective config to this path.",
    ),
) -> None:
    """Show the effective controller configuration."""
    from arlon_ctl.config.loader import write_config

    cfg = _load_config(config)
    ui.phase("CONTROLLER CONFIG")
    for key, value in cfg.model_dump(mode="json", exclude={"argocd_token"}).items():
        ui.detail(key, str(value))
    if write:
        try:
            write_config(cfg, write)
        except OSError as exc:
            ui.fail(f"Failed to write {write}: {exc}")
            raise typer.Exit(1) from exc
        ui.ok(f"Config written to {write}")
    raise typer.Exit(0)


# ── gitrepo ──────────────────────────────────────────────────────────────────


@gitrepo_app.command("register")
def gitrepo_register(
    url: str = typer.Argument(..., help="Git repository URL."),
    alias: str = typer.Option("default", "--alias", help="Alias for the repository."),
) -> None:
    """Register a git repository under an alias."""
    from arlon_ctl.gitrepo.context import RepoContextError, register

    try:
        register(url, alias)
    except RepoContextError as exc:
        output.error(str(exc))
        raise typer.Exit(1) from exc
    output.success(f"Repository {url} registered as {alias}")
    raise typer.Exit(0)


@gitrepo_app.command("unregister")
def gitrepo_unregister(
    alias: str = typer.Argument(..., help="Alias to remove."),
) -> None:
    """Unregister a previously registered repository alias."""
    from arlon_ctl.gitrepo.context import RepoContextError, unregister

    try:
        removed = unregister(alias)
    except RepoContextError as exc:
        output.error(str(exc))
        raise typer.Exit(1) from exc
    if removed is None:
        output.detail("no repositories registered")
    elif removed:
        output.success(f"Repository {alias} deleted")
    else:
        ui.warn(f"Repository alias {alias} not registered")
    raise typer.Exit(0)


@gitrepo_app.command("list")
def gitrepo_list() -> None:
    """List registered repository aliases."""
    from arlon_ctl.gitrepo.context import RepoContextError, list_repos

    try:
        cfg = list_repos()
    except RepoContextError as exc:
        output.error(str(exc))
        raise typer.Exit(1) from exc
    if not cfg.repos:
        output.detail("no repositories registered")
        raise typer.Exit(0)
    ui.console.print(ui.repo_table(cfg.repos, current=cfg.current.alias))
    raise typer.Exit(0)


# ── profile ──────────────────────────────────────────────────────────────────


@profile_app.command("delete")
def profile_delete(
    name: str = typer.Argument(..., help="Profile name."),
    ns: str = typer.Option("arlon", "--ns", help="The arlon namespace."),
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig", help="Path to kubeconfig."),
) -> None:
    """Delete a profile."""
    from kubernetes.client.rest import ApiException

    from arlon_ctl.profile.profiles import delete_profile

    try:
        _core_v1, custom_api = _kube_apis(kubeconfig)
        delete_profile(custom_api, ns, name)
    except ApiException as exc:
        output.error(f"failed to delete profile {name}: {exc.reason}")
        raise typer.Exit(1) from exc
    except Exception as exc:
        output.error(f"failed to get k8s client config: {exc}")
        raise typer.Exit(1) from exc
    output.success(f"Profile {name} deleted")
    raise typer.Exit(0)


@profile_app.command("sync")
def profile_sync(
    name: str = typer.Argument(..., help="Profile name."),
    repo_url: Optional[str] = typer.Option(None, "--repo-url", help="Target git repository URL."),
    repo_path: Optional[str] = typer.Option(None, "--repo-path", help="Directory inside the repository."),
    repo_branch: Optional[str] = typer.Option(None, "--repo-branch", help="Branch to push to."),
    ns: str = typer.Option("arlon", "--ns", help="The arlon namespace."),
    argocd_ns: str = typer.Option("argocd", "--argocd-ns", help="The argocd namespace."),
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig", help="Path to kubeconfig."),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging."),
) -> None:
    """Write a profile's chart and bundle templates to git."""
    from arlon_ctl.profile.git import ProfileSyncError, create_in_git
    from arlon_ctl.profile.profiles import ProfileLookupError, load_profile

    if debug:
        logging.basicConfig(level=logging.DEBUG)

    try:
        core_v1, _custom_api = _kube_apis(kubeconfig)
        profile = load_profile(core_v1, name, ns)
    except ProfileLookupError as exc:
        output.error(str(exc))
        raise typer.Exit(1) from exc
    except Exception as exc:
        output.error(f"failed to get k8s client config: {exc}")
        raise typer.Exit(1) from exc

    url = repo_url or profile.repo_url
    path = repo_path or profile.repo_path
    branch = repo_branch if repo_branch is not None else profile.repo_branch
    if not url or not path:
        output.error("profile has no repository url/path; pass --repo-url and --repo-path")
        raise typer.Exit(1)

    ui.phase("PROFILE SYNC")
    ui.step(f"profile {name}: {len(profile.bundles)} bundle(s)")
    ui.step(f"target {url} ({branch or 'default branch'}) at {path}")
    try:
        pushed = create_in_git(core_v1, profile, argocd_ns, ns, url, path, branch)
    except ProfileSyncError as exc:
        ui.fail(str(exc))
        raise typer.Exit(1) from exc
    if pushed:
        ui.ok(f"Profile {name} pushed")
    else:
        ui.ok(f"Profile {name} already up to date")
    raise typer.Exit(0)


# ── Entry point ──────────────────────────────────────────────────────────────


def main() -> int:
    """Run the CLI and return an exit code."""
    try:
        app()
        return 0
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 0


if __name__ == "__main__":
    sys.exit(main())
