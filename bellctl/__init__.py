"""Bell BLE controller link and notification decoding."""

__version__ = "0.1.0"
