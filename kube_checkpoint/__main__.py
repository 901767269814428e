"""Entry point for running kube-checkpoint as a module."""

from kube_checkpoint.tool.checkpoint import main

if __name__ == "__main__":
    main()
