"""casauth - CAS single-sign-on client for Python web applications."""

__version__ = "0.1.0"
