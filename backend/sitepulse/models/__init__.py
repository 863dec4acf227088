# Re-export all models for convenient imports
from sitepulse.models.project import Project, ProjectMembership
from sitepulse.models.message import Message
from sitepulse.models.rfi import RFI, RFIStatus, ACTIONABLE_RFI_STATUSES
from sitepulse.models.document import Document
from sitepulse.models.tender import Tender, TenderStatus

__all__ = [
    # Projects
    "Project",
    "ProjectMembership",
    # Watched entities
    "Message",
    "RFI",
    "RFIStatus",
    "ACTIONABLE_RFI_STATUSES",
    "Document",
    "Tender",
    "TenderStatus",
]
