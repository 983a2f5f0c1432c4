"""Domain-specific errors for bellctl."""


class BellctlError(Exception):
    """Base error for bellctl."""


class ProfileValidationError(BellctlError):
    """Raised when a profile file does not conform to schema or semantics."""


class ProfileLoadError(BellctlError):
    """Raised when loading profile sources fails."""


class DeviceSelectionError(BellctlError):
    """Raised when device matching cannot resolve a single target."""


class DeviceDiscoveryError(BellctlError):
    """Raised when a BLE scan cannot be completed."""


class AttributeNotFoundError(BellctlError):
    """Raised when a GATT service or characteristic is missing on a peripheral."""


class ServiceNotFoundError(AttributeNotFoundError):
    """Raised when no service matches the requested short UUID."""


class CharacteristicNotFoundError(AttributeNotFoundError):
    """Raised when no characteristic matches the requested short UUID."""


class LinkStateError(BellctlError):
    """Raised when a link operation is called from the wrong state."""


class TransportError(BellctlError):
    """Base transport error."""


class AdapterUnavailableError(TransportError):
    """Raised when no usable Bluetooth adapter is present."""


class TransportConnectError(TransportError):
    """Raised on BLE connect failures."""


class TransportTimeoutError(TransportError):
    """Raised when a bounded BLE wait runs out."""


class TransportSendError(TransportError):
    """Raised when a GATT write or subscribe fails."""


class PairFailureError(TransportError):
    """Raised when pairing with a peripheral fails."""


class ConnectFailureError(TransportError):
    """Raised by the link manager when a peripheral could not be connected."""
