"""Website CRD and backend record models."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from cloudself.crd.registry import CRDRegistry
from cloudself.crd.base import CRDSpec, CRDStatus

GROUP = "websites.cloudself.dev"
VERSION = "v1"
KIND = "Website"
PLURAL = "websites"

DNS_LABEL_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"
MAX_HTML_LENGTH = 102400


class WebsitePhase(str, Enum):
    """Lifecycle phase shared by the Website status and the backend record."""

    PENDING = "pending"
    PROVISIONED = "provisioned"
    FAILED = "failed"


class WebsiteStatus(CRDStatus):
    """Observed state of a Website, owned by the reconciler."""

    status: Optional[WebsitePhase] = Field(
        default=None, description="Lifecycle phase (pending, provisioned, failed)"
    )
    podIpAddress: Optional[str] = Field(
        default=None, description="Access address of the website (<node>:<nodePort>)"
    )
    errorMessage: Optional[str] = Field(
        default=None, description="Error context if provisioning failed"
    )
    lastReconcileTime: Optional[str] = Field(
        default=None, description="Timestamp of the last status write"
    )


@CRDRegistry.register(
    GROUP,
    VERSION,
    KIND,
    PLURAL,
    short_names=["ws"],
    status_model=WebsiteStatus,
    printer_columns=[
        {"name": "Website Name", "type": "string", "jsonPath": ".spec.websiteName"},
        {"name": "Status", "type": "string", "jsonPath": ".status.status"},
        {"name": "Address", "type": "string", "jsonPath": ".status.podIpAddress"},
        {"name": "Age", "type": "date", "jsonPath": ".metadata.creationTimestamp"},
    ],
)
class WebsiteSpec(CRDSpec):
    """Website CRD specification."""

    websiteName: str = Field(
        ...,
        min_length=1,
        max_length=63,
        pattern=DNS_LABEL_PATTERN,
        description="DNS-compliant name for the website",
    )
    htmlContent: str = Field(
        ..., max_length=MAX_HTML_LENGTH, description="HTML content to serve"
    )
    userId: str = Field(..., min_length=1, description="User who owns this website")
    backendId: int = Field(
        ..., ge=1, description="Id of the website record in the backend database"
    )


class BackendRecord(BaseModel):
    """A website row as returned by the backend provisioner API."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int
    user_id: str = Field(alias="userId")
    website_name: str = Field(alias="websiteName")
    html_content: str = Field(alias="htmlContent")
    status: WebsitePhase
    pod_ip_address: Optional[str] = Field(default=None, alias="podIpAddress")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    def to_spec(self):
        """Seed a Website spec 1:1 from this record."""
        return WebsiteSpec(
            websiteName=self.website_name,
            htmlContent=self.html_content,
            userId=self.user_id,
            backendId=self.id,
        )


class PendingWebsitesResponse(BaseModel):
    """Wrapper returned by GET /api/provisioner/websites/pending."""

    success: bool
    data: List[Any] = Field(default_factory=list)
    count: int = 0
