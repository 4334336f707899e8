"""binstall — fetch, verify and install prebuilt binary artifacts."""

__version__ = "0.1.0"
