"""
Document API endpoints.

Registers metadata for files stored by the upload subsystem.
"""

from typing import List
from fastapi import APIRouter, Depends, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from autoprint.app.db.session import get_db
from autoprint.app.models.document import Document
from autoprint.app.schemas.document import DocumentCreate, DocumentResponse
from autoprint.app.core.guards import require_student
from autoprint.app.core.exceptions import ResourceNotFoundError

router = APIRouter(prefix="/documents", tags=["Documents"])


@router.post("", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def register_document(
    document_data: DocumentCreate,
    current_account: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    """
    Register an uploaded document with its print settings.
    """
    document = Document(
        account_id=current_account["account_id"],
        **document_data.model_dump()
    )

    db.add(document)
    await db.commit()
    await db.refresh(document)

    return DocumentResponse.model_validate(document)


@router.get("", response_model=List[DocumentResponse])
async def list_documents(
    current_account: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(Document)
        .where(Document.account_id == current_account["account_id"])
        .order_by(Document.created_at.desc(), Document.id.desc())
    )
    return [DocumentResponse.model_validate(d) for d in result.scalars().all()]


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: int = Path(..., description="Document ID"),
    current_account: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    """
    Get one of the caller's documents. Other accounts' documents are reported as missing.
    """
    document = await db.get(Document, document_id)
    if not document or document.account_id != current_account["account_id"]:
        raise ResourceNotFoundError("Document", document_id)

    return DocumentResponse.model_validate(document)
