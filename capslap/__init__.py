"""capslap - caption studio process bridge."""

__version__ = "0.1.0"
__logo__ = "🎬"
