"""relaybot: a polling notification bot with a persistent state store."""

__version__ = "0.1.0"
