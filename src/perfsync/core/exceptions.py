"""
Custom exceptions for perfsync.

This module defines a hierarchy of exceptions shared by the store, the
model layer, the buildbot config loader and the syncer.

Exception Hierarchy:
    PerfSyncError (base)
    ├── StoreError (unknown table/column in a store operation)
    ├── TriggerableNotFound (no triggerable with the requested name)
    ├── DuplicateRepositoryInRootSet (two commits of one repository in a root set)
    ├── RepositoryNotInRootSet (a {root: ...} argument names a missing repository)
    ├── BuildbotResponseError (buildbot returned an unexpected record)
    └── BuildbotConfigError (malformed sync configuration)
        ├── UnrecognizedParameter
        ├── UnrecognizedNamedArgument
        ├── UnrecognizedType
        ├── InvalidParameter
        └── MissingRequiredField

Example:
    >>> from perfsync.core.exceptions import MissingRequiredField
    >>> try:
    ...     raise MissingRequiredField("platform")
    ... except MissingRequiredField as e:
    ...     print(e.field, e.context)
"""


class PerfSyncError(Exception):
    """
    Base exception for all perfsync errors.

    Attributes:
        message: Human-readable error message
        context: Optional dictionary of additional context
    """

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Return string representation of the error."""
        return self.message


class StoreError(PerfSyncError):
    """Raised when a store operation names an unknown table or column."""


class TriggerableNotFound(PerfSyncError):
    """
    Raised when no triggerable with the given name exists.

    The API reports this as the ``TriggerableNotFound`` status rather
    than as an HTTP error.
    """

    def __init__(self, name: str) -> None:
        super().__init__(f"Triggerable not found: {name}", triggerable=name)
        self.name = name


class DuplicateRepositoryInRootSet(PerfSyncError):
    """Raised when a root set would hold two commits of the same repository."""

    def __init__(self, root_set_id: int, repository_name: str) -> None:
        super().__init__(
            f"Root set {root_set_id} has more than one commit for {repository_name}",
            root_set=root_set_id,
            repository=repository_name,
        )
        self.root_set_id = root_set_id
        self.repository_name = repository_name


class RepositoryNotInRootSet(PerfSyncError):
    """
    Raised when a build request cannot be triggered because its root set
    lacks a repository named by a ``{"root": ...}`` argument.
    """

    def __init__(self, repository_name: str, build_request_id: int) -> None:
        super().__init__(
            f'"{repository_name}" must be specified in the root set '
            f"of build request {build_request_id}",
            repository=repository_name,
            build_request=build_request_id,
        )
        self.repository_name = repository_name
        self.build_request_id = build_request_id


class BuildbotResponseError(PerfSyncError):
    """Raised when buildbot returns data that cannot be mapped to a build entry."""


class BuildbotConfigError(PerfSyncError):
    """
    Base exception for sync configuration errors.

    These are fatal at load time: a process must refuse to start with a
    malformed configuration.
    """


class UnrecognizedParameter(BuildbotConfigError):
    """Raised when a configuration layer contains an unknown key."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unrecognized parameter {name}", parameter=name)
        self.name = name


class UnrecognizedNamedArgument(BuildbotConfigError):
    """Raised when an argument directive uses a key other than root/rootsExcluding."""

    def __init__(self, name: str, argument: str) -> None:
        super().__init__(
            f"Unrecognized named argument {name} in argument {argument}",
            directive=name,
            argument=argument,
        )
        self.name = name
        self.argument = argument


class UnrecognizedType(BuildbotConfigError):
    """Raised when a configuration names a type missing from ``types``."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unrecognized type {name}", type=name)
        self.name = name


class InvalidParameter(BuildbotConfigError):
    """Raised when a recognized parameter has a value of the wrong shape."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Invalid parameter {name}: {reason}", parameter=name)
        self.name = name
        self.reason = reason


class MissingRequiredField(BuildbotConfigError):
    """Raised when a merged configuration lacks a required field."""

    def __init__(self, field: str) -> None:
        super().__init__(f"configuration must specify {field}", field=field)
        self.field = field


__all__ = [
    "PerfSyncError",
    "StoreError",
    "TriggerableNotFound",
    "DuplicateRepositoryInRootSet",
    "RepositoryNotInRootSet",
    "BuildbotResponseError",
    "BuildbotConfigError",
    "UnrecognizedParameter",
    "UnrecognizedNamedArgument",
    "UnrecognizedType",
    "InvalidParameter",
    "MissingRequiredField",
]
