"""Base classes for CRD specifications."""

from pydantic import BaseModel, ConfigDict


class CRDStatus(BaseModel):
    """Base class for all CRD status objects."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class CRDSpec(BaseModel):
    """Base class for all CRD spec objects."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)
