"""tabpilot: natural-language instructions turned into sequenced browser actions."""

__version__ = "0.1.0"
