"""Core services for the driver scenario engine.

Holds storage and other I/O helpers shared by the CLI and the API. It has
no dependency on any web framework.
"""

__version__ = "0.3.0"
