"""Local-network controller for Tuya RGBW bulbs."""

__version__ = "0.1.0"
