"""Manifest materialisation into a git working tree.

Two steps, both purely file-level:

* :func:`copy_manifests` copies the embedded profile chart verbatim.
* :func:`process_bundles` writes one Argo CD ``Application`` template per
  bundle.  Cluster-specific values are **not** resolved here: the
  cluster-name placeholder (``{{ .Values.clusterName }}``) is written
  literally and resolved by Helm when the delivery engine deploys the
  profile for a particular cluster.

Token replacement is text-level (``${KEY}``), so YAML layout in the
templates is preserved byte-for-byte.
"""

from __future__ import annotations

import logging
import posixpath
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional

from arlon_ctl.api.models import Bundle, BundleType

logger = logging.getLogger(__name__)

# ── constants ────────────────────────────────────────────────────────

#: Placeholder Helm resolves to the target cluster at deploy time.
CLUSTER_NAME_PLACEHOLDER = "{{ .Values.clusterName }}"

#: Keys every bundle application template needs.
REQUIRED_KEYS: FrozenSet[str] = frozenset(
    {
        "CLUSTER_NAME",
        "BUNDLE_NAME",
        "REPO_URL",
        "REPO_PATH",
    },
)

BUNDLE_APP_TEMPLATE = """\
apiVersion: argoproj.io/v1alpha1
kind: Application
metadata:
  name: ${CLUSTER_NAME}-${BUNDLE_NAME}
  namespace: ${ARGOCD_NAMESPACE}
  labels:
    managed-by: arlon
    arlon-type: bundle-app
    bundle-name: ${BUNDLE_NAME}
  finalizers:
  - resources-finalizer.argocd.argoproj.io
spec:
  project: default
  source:
    repoURL: ${REPO_URL}
    path: ${REPO_PATH}
    targetRevision: ${REPO_REVISION}
  destination:
    name: ${CLUSTER_NAME}
    namespace: ${DEST_NAMESPACE}
  syncPolicy:
    automated:
      prune: true
    syncOptions:
    - CreateNamespace=true
"""


class BundleRenderError(Exception):
    """A bundle could not be rendered; nothing should be committed."""


# ── token replacement ────────────────────────────────────────────────


def render_template(
    template_text: str,
    substitutions: Dict[str, str],
    *,
    required_keys: Optional[FrozenSet[str]] = None,
) -> str:
    """Replace all ``${KEY}`` tokens in *template_text*.

    Raises
    ------
    ValueError
        If a key in *required_keys* (default :data:`REQUIRED_KEYS`) is
        missing or empty.
    """
    if required_keys is None:
        required_keys = REQUIRED_KEYS

    missing: List[str] = sorted(
        k for k in required_keys if not substitutions.get(k)
    )
    if missing:
        raise ValueError(
            f"Missing required substitution key(s): {', '.join(missing)}"
        )

    # deterministic replacement order
    result = template_text
    for key in sorted(substitutions):
        result = result.replace("${" + key + "}", substitutions[key])
    return result


# ── embedded manifests ───────────────────────────────────────────────


def _walk(node, rel: str) -> Iterable[tuple]:
    for child in sorted(node.iterdir(), key=lambda c: c.name):
        child_rel = posixpath.join(rel, child.name) if rel else child.name
        if child.is_dir():
            yield from _walk(child, child_rel)
        else:
            yield child_rel, child


def copy_manifests(
    worktree: Path,
    source,
    src_root: str,
    dest_path: str,
) -> List[str]:
    """Copy every file under *src_root* of *source* to *dest_path* in *worktree*.

    *source* is a directory-like object (:class:`pathlib.Path` or an
    :mod:`importlib.resources` traversable).  Existing files are
    overwritten, directories created as needed.  Returns the written
    paths relative to the worktree.
    """
    root = source if src_root in ("", ".") else source.joinpath(src_root)
    if not root.is_dir():
        raise FileNotFoundError(f"Manifest source not found: {src_root}")

    written: List[str] = []
    for rel, node in _walk(root, ""):
        dest_rel = posixpath.join(dest_path, rel)
        dest = Path(worktree) / dest_rel
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(node.read_bytes())
        written.append(dest_rel)
    logger.debug("Copied %d manifest file(s) to %s", len(written), dest_path)
    return written


# ── bundles ──────────────────────────────────────────────────────────


def _bundle_source(bundle: Bundle, repo_url: str, repo_path: str) -> Dict[str, str]:
    if bundle.type == BundleType.STATIC:
        if not bundle.data:
            raise BundleRenderError(f"static bundle {bundle.name} has no data")
        return {
            "REPO_URL": repo_url,
            "REPO_PATH": posixpath.join(repo_path, "bundles", bundle.name),
            "REPO_REVISION": "HEAD",
        }
    if not bundle.repo_url or not bundle.repo_path:
        raise BundleRenderError(
            f"dynamic bundle {bundle.name} is missing its repository url or path"
        )
    return {
        "REPO_URL": bundle.repo_url,
        "REPO_PATH": bundle.repo_path,
        "REPO_REVISION": bundle.repo_revision or "HEAD",
    }


def process_bundles(
    worktree: Path,
    cluster_name_placeholder: str,
    repo_url: str,
    repo_path: str,
    templates_path: str,
    bundles: List[Bundle],
    *,
    argocd_ns: str = "argocd",
    dest_namespace: str = "default",
) -> List[str]:
    """Render one application template per bundle into *templates_path*.

    Static bundle contents are written to
    ``<repo_path>/bundles/<bundle>/<bundle>.yaml`` and the application
    points back at that directory of *repo_url*.  Any failure raises
    :class:`BundleRenderError`; files already written stay uncommitted.
    """
    worktree = Path(worktree)
    written: List[str] = []
    for bundle in bundles:
        if not bundle.name:
            raise BundleRenderError("bundle has no name")
        subs = {
            "CLUSTER_NAME": cluster_name_placeholder,
            "BUNDLE_NAME": bundle.name,
            "ARGOCD_NAMESPACE": argocd_ns,
            "DEST_NAMESPACE": dest_namespace,
        }
        subs.update(_bundle_source(bundle, repo_url, repo_path))

        if bundle.type == BundleType.STATIC:
            data_rel = posixpath.join(repo_path, "bundles", bundle.name, f"{bundle.name}.yaml")
            data_file = worktree / data_rel
            data_file.parent.mkdir(parents=True, exist_ok=True)
            data_file.write_text(bundle.data, encoding="utf-8")
            written.append(data_rel)

        try:
            rendered = render_template(BUNDLE_APP_TEMPLATE, subs)
        except ValueError as exc:
            raise BundleRenderError(f"bundle {bundle.name}: {exc}") from exc
        app_rel = posixpath.join(templates_path, f"{bundle.name}.yaml")
        app_file = worktree / app_rel
        app_file.parent.mkdir(parents=True, exist_ok=True)
        app_file.write_text(rendered, encoding="utf-8")
        written.append(app_rel)
        logger.debug("Rendered bundle %s (%s)", bundle.name, bundle.type.value)
    return written
