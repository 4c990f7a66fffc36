"""keytally — credential-gated request accounting for small API services."""

__version__ = "1.0.0"
