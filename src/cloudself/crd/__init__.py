"""CRD management for the cloudself provisioner."""

from .registry import CRDRegistry
from .base import CRDSpec, CRDStatus

__all__ = ["CRDRegistry", "CRDSpec", "CRDStatus"]
