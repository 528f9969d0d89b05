"""Exception types raised by the erasure-coding simulator."""

from __future__ import annotations


class ErasureSimError(RuntimeError):
    """Base class for simulator failures."""


class InvalidConfiguration(ErasureSimError, ValueError):
    """Malformed chunk counts, node counts or command arguments."""


class InsufficientChunks(ErasureSimError):
    """Too many data fragments are missing to rebuild an object."""

    def __init__(self, message: str, missing: tuple = ()) -> None:
        super().__init__(message)
        self.missing = tuple(missing)


class ChecksumMismatch(ErasureSimError):
    """Reconstructed bytes do not match the checksum recorded at store time."""


class NodeUnavailable(ErasureSimError):
    """A write was attempted against a failed node."""


class UnknownObject(ErasureSimError, KeyError):
    def __str__(self) -> str:  # KeyError quotes its argument
        return str(self.args[0]) if self.args else ""


class UnknownNode(ErasureSimError, KeyError):
    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""
