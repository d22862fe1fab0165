"""KeyGate - access-control gateway for an external key-issuing service."""

__version__ = "0.1.0"
