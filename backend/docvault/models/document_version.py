from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docvault.database import Base


class DocumentVersion(Base):
    __tablename__ = "document_versions"
    __table_args__ = (
        Index("ix_document_versions_document_version", "document_id", "version_number", unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    document_id: Mapped[int] = mapped_column(
        ForeignKey("documents.id", ondelete="CASCADE"), index=True, nullable=False
    )
    version_number: Mapped[int] = mapped_column(nullable=False)
    # gzip of the full text, or gzip of a patch against base_version_id when is_delta
    stored_content: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    content_size: Mapped[int] = mapped_column(nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    author_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    change_description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_auto_save: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_restore: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_delta: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    base_version_id: Mapped[int | None] = mapped_column(
        ForeignKey("document_versions.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    document = relationship("Document", back_populates="versions")
    author = relationship("User", back_populates="versions")
