"""Arlon cluster control plane.

Reconciles ``Cluster`` custom resources into Argo CD applications and
materialises profile bundles into git repositories for the delivery
engine to pick up.
"""

try:
    from importlib.metadata import version

    __version__ = version("arlon-ctl")
except Exception:
    __version__ = "0.0.0.dev0"

__all__ = ["__version__"]
