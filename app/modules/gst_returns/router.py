from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.database.database import get_db
from app.dependencies.tenantDependencies import TenantId, ActorId
from app.modules.gst_returns.schemas import (
    ReturnType, PeriodSummary, DraftOut, PeriodReturnCreate, PeriodReturnOut,
    PeriodReturnList, StatusTransition
)
from app.modules.gst_returns.service import PeriodReturnService

gst_router = APIRouter(prefix="/gst", tags=["GST Returns"])


@gst_router.get("/summary", response_model=PeriodSummary)
def get_summary(
    tenant_id: TenantId,
    period: Optional[str] = Query(None, description="AAAA-MM o fecha ISO"),
    return_type: ReturnType = Query(ReturnType.GSTR1),
    db: Session = Depends(get_db)
):
    """Resumen del periodo sin guardar la declaración"""
    return PeriodReturnService(db).summarize(tenant_id, period, return_type)


@gst_router.get("/draft", response_model=DraftOut)
def get_draft(
    tenant_id: TenantId,
    period: Optional[str] = Query(None, description="AAAA-MM o fecha ISO"),
    db: Session = Depends(get_db)
):
    """Borrador por secciones: B2B, B2C, exportación/SEZ y nil"""
    return PeriodReturnService(db).build_draft(tenant_id, period)


@gst_router.get("/returns", response_model=PeriodReturnList)
def list_returns(
    tenant_id: TenantId,
    return_type: Optional[ReturnType] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    return PeriodReturnService(db).list_returns(tenant_id, return_type, limit, offset)


@gst_router.post("/returns", response_model=PeriodReturnOut, status_code=status.HTTP_201_CREATED)
def upsert_return(
    data: PeriodReturnCreate,
    tenant_id: TenantId,
    actor_id: ActorId,
    db: Session = Depends(get_db)
):
    """
    Generar o regenerar la declaración del periodo.
    Vuelve a borrador y conserva el historial de presentación.
    """
    return PeriodReturnService(db).upsert_return(tenant_id, data.period, data.return_type, actor_id)


@gst_router.get("/returns/{return_id}", response_model=PeriodReturnOut)
def get_return(return_id: UUID, tenant_id: TenantId, db: Session = Depends(get_db)):
    return PeriodReturnService(db).get_return(return_id, tenant_id)


@gst_router.patch("/returns/{return_id}/status", response_model=PeriodReturnOut)
def transition_status(
    return_id: UUID,
    data: StatusTransition,
    tenant_id: TenantId,
    actor_id: ActorId,
    db: Session = Depends(get_db)
):
    return PeriodReturnService(db).transition_status(
        return_id,
        data.status,
        tenant_id,
        actor_id=actor_id,
        reference_number=data.reference_number,
        notes=data.notes,
        expected_version=data.expected_version
    )
