"""Exceptions raised while declaring and provisioning a resource graph."""

from typing import Optional

__all__ = [
    "InfragraphError",
    "DeclarationError",
    "DuplicateNameError",
    "IncompleteOutputsError",
    "NotFoundError",
    "CyclicDependencyError",
    "ProvisionFailure",
    "InvalidStateError",
    "ConfigError",
]


class InfragraphError(Exception):
    """Base class for all errors raised by the framework."""

    pass


class DeclarationError(InfragraphError):
    """Raised when a program declares resources or components incorrectly."""

    pass


class DuplicateNameError(DeclarationError):
    """Raised when a name is declared twice within the same parent scope."""

    pass


class IncompleteOutputsError(DeclarationError):
    """Raised when a component finishes building with unbound outputs."""

    pass


class NotFoundError(DeclarationError, KeyError):
    """Raised when an output key is not part of a declared output schema."""

    def __str__(self):
        return str(self.args[0]) if self.args else ""


class CyclicDependencyError(DeclarationError):
    """Raised when resource dependencies form a cycle."""

    def __init__(self, cycle: list[str]):
        super().__init__(f"Cyclic dependency between resources: {cycle}")
        self.cycle = cycle


class ProvisionFailure(InfragraphError):
    """Raised when a resource could not be provisioned.

    Attributes:
        node: The failing resource's identity, as ``(name, type token)``.
        urn: The failing resource's URN.
        cause: The underlying error, reported verbatim.
    """

    def __init__(self, node: tuple[str, str], urn: str, cause: BaseException):
        super().__init__(f"Failed to provision {node[1]} '{node[0]}' ({urn}): {cause}")
        self.node = node
        self.urn = urn
        self.cause = cause


class InvalidStateError(InfragraphError):
    """Raised when the engine is used in a way its state does not allow."""

    pass


class ConfigError(InfragraphError):
    """Raised when a stack configuration cannot be loaded or validated."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path
