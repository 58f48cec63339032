"""kubexec: run a declared command across every matching container and publish the output."""

__version__ = "0.1.0"
