"""Motion-triggered camera recorder with a small HTTP control panel."""

__version__ = "0.1.0"
__all__ = ["__version__"]