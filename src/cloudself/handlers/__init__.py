"""Handler modules for the cloudself operator."""

# Import handlers so their kopf decorators register
from . import website_handler

__all__ = ["website_handler"]
