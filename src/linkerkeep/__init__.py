"""Static keep-list generation for dynamically instantiated types."""

__version__ = "0.1.0"
