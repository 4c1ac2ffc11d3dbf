"""
Document database model.

Immutable reference to an uploaded file plus the print settings chosen at
upload time. Created once by the upload subsystem, read-only afterwards.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Enum, BigInteger
from sqlalchemy.sql import func
from autoprint.app.db.session import Base
from autoprint.app.models.print_job_enums import ColorMode, PaperSize, Orientation


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)

    # File reference (storage lives outside this service)
    original_name = Column(String(255), nullable=False)
    file_name = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=True)
    file_size = Column(BigInteger, nullable=True)
    page_count = Column(Integer, nullable=False)

    # Print settings
    copies = Column(Integer, default=1, nullable=False)
    color_mode = Column(Enum(ColorMode), default=ColorMode.BLACK_AND_WHITE, nullable=False)
    paper_size = Column(Enum(PaperSize), default=PaperSize.A4, nullable=False)
    orientation = Column(Enum(Orientation), default=Orientation.PORTRAIT, nullable=False)
    duplex = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Document(id={self.id}, name='{self.original_name}', pages={self.page_count})>"
