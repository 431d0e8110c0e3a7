"""
Exceptions raised by wgmesh.

Every error derives from MeshError so callers at the HTTP and CLI edges can
catch the whole family in one place.
"""


class MeshError(Exception):
    """Base exception for wgmesh errors."""
    pass


class ValidationError(MeshError):
    """A submitted host identity or argument is malformed or incomplete."""
    pass


class ValueOutOfRange(ValidationError):
    """A numeric input does not fit in its bit field."""
    pass


class ConflictError(MeshError):
    """A host collides with an existing registry entry."""

    def __init__(self, message: str, value: str = ""):
        super().__init__(message)
        self.value = value


class NameConflict(ConflictError):
    """Another host already uses this name."""

    def __init__(self, name: str):
        super().__init__(f'host with name "{name}" already exists', name)


class AddressConflict(ConflictError):
    """Another host already holds this mesh address."""

    def __init__(self, address: str, holder: str):
        super().__init__(
            f'address {address} is already registered to host "{holder}"',
            address,
        )
        self.holder = holder


class ParseError(MeshError):
    """Interface listing text does not have the expected structure."""
    pass


class MissingField(ParseError):
    """A required field could not be located in an interface block."""

    def __init__(self, field: str):
        super().__init__(f"unable to parse interface {field}")
        self.field = field


class StorageError(MeshError):
    """Reading or writing the persisted network failed."""
    pass


class LockFailure(MeshError):
    """Shared coordinator state is unusable after an earlier crash."""
    pass


class IncompleteHost(MeshError):
    """A host cannot be rendered as a peer."""

    def __init__(self, host_name: str, reason: str = "has no public key"):
        super().__init__(f'host "{host_name}" {reason}')
        self.host_name = host_name
