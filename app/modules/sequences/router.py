from datetime import date

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database.database import get_db, get_engine
from app.dependencies.tenantDependencies import TenantId
from app.modules.sequences.schemas import SequencePurpose, AllocatedNumber
from app.modules.sequences.service import SequenceAllocator, build_sequence_key, PURPOSE_PREFIXES, format_document_number

router = APIRouter(prefix="/sequences", tags=["Sequences"])


@router.post("/{purpose}/next", response_model=AllocatedNumber, status_code=status.HTTP_201_CREATED)
def allocate_next_number(
    purpose: SequencePurpose,
    tenant_id: TenantId,
    db: Session = Depends(get_db)
):
    """
    Asignar el siguiente número de documento para un propósito
    (facturas, empleados). El número queda consumido aunque no se use.
    """
    allocator = SequenceAllocator(get_engine(db))
    year = date.today().year
    key = build_sequence_key(tenant_id, purpose, year)
    seq = allocator.next(key)
    return AllocatedNumber(
        key=key,
        sequence=seq,
        number=format_document_number(PURPOSE_PREFIXES[purpose](), year, seq)
    )
