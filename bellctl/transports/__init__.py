"""BLE transports."""
