"""Command line tool for kube-checkpoint."""
