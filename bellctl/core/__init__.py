"""Profile matching, link lifecycle and payload decoding."""
