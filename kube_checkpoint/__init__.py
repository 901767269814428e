"""
kube-checkpoint keeps a temporary API server available on a node while a
self-hosted control plane comes up, and hands control back once it is running.
"""

__all__ = [
    "classifier",
    "config",
    "exceptions",
    "manifest",
    "observer",
    "reconciler",
    "sanitizer",
    "secret",
    "store",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
