"""Order workflow and material-ordering safety engine for a custom framing shop."""

__version__ = "0.1.0"
