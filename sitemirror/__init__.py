"""Single-site crawler that saves a local mirror of a website."""

__version__ = "0.1.0"
