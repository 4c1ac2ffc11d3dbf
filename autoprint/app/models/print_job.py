"""
Print Job database model.

The print job is the unit the operator queue works on. Status and queue
position are plain columns mutated only by the print-job state machine.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum, Numeric
from sqlalchemy.sql import func
from autoprint.app.db.session import Base
from autoprint.app.models.print_job_enums import PrintJobStatus


class PrintJob(Base):
    """
    Print Job model.

    Invariants:
    - queue_position is set only while status is QUEUED; the unique
      constraint guarantees no two queued jobs share a position
      (NULLs never collide).
    - total_cost = total_pages * cost_per_page, fixed at creation.
    - started_at / completed_at are written once.
    """
    __tablename__ = "print_jobs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    job_number = Column(String(20), unique=True, nullable=False, index=True)

    # Ownership and references
    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)
    document_id = Column(Integer, ForeignKey('documents.id'), nullable=False, index=True)
    payment_id = Column(Integer, ForeignKey('payments.id'), nullable=True, index=True)

    # Status and ordering
    status = Column(Enum(PrintJobStatus), default=PrintJobStatus.AWAITING_PAYMENT, nullable=False, index=True)
    queue_position = Column(Integer, unique=True, nullable=True)

    # Cost (fixed at creation)
    copies = Column(Integer, nullable=False, default=1)
    total_pages = Column(Integer, nullable=False)
    cost_per_page = Column(Numeric(10, 2), nullable=False)
    total_cost = Column(Numeric(12, 2), nullable=False)

    # Lifecycle timestamps
    funded_at = Column(DateTime(timezone=True), nullable=True)
    held_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    estimated_completion_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)

    # Operator annotations
    operator_notes = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<PrintJob(id={self.id}, number='{self.job_number}', status='{self.status.value}', position={self.queue_position})>"
