"""
Hearth CLI - Command-line interface for the Hearth server.

Sends one command over MQTT, the same way a panel does, and prints the result.

Usage:
    hearth-cli rooms
    hearth-cli services Office
    hearth-cli send philips-hue-set-light -p light=3 -p on=false
"""

__version__ = "1.0.0"
