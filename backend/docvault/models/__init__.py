from docvault.models.document import Document
from docvault.models.document_version import DocumentVersion
from docvault.models.user import User

__all__ = ["User", "Document", "DocumentVersion"]
