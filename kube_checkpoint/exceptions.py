"""Exceptions related to kube-checkpoint."""

__all__ = [
    "CheckpointException",
    "InputException",
    "FatalException",
    "SecretException",
    "ManifestException",
]


class CheckpointException(Exception):
    """Generic base exception used for this library."""


class InputException(CheckpointException):
    """Raised when the input files or values are not formatted as expected."""


class FatalException(CheckpointException):
    """Raised when the process can't safely continue reconciling.

    The process exits and relies on the host supervisor to restart it.
    """


class SecretException(FatalException):
    """Raised when secret material can't be fetched or persisted."""

    def __init__(self, secret_name: str, message: str) -> None:
        super().__init__(f"Secret {secret_name}: {message}")
        self.secret_name = secret_name


class ManifestException(FatalException):
    """Raised when a manifest can't be rendered or stored."""
