"""Business logic services for the cloudself provisioner."""

from . import resources
from . import backend

__all__ = ["resources", "backend"]
