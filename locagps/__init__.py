"""NMEA sentence generation, daemon control messages and AGPS resource state machines."""

__version__ = "0.1.0"