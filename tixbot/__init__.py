"""tixbot - desktop shell that supervises the local openclaw gateway."""

__version__ = "0.1.0"
