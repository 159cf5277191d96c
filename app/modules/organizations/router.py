from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from uuid import UUID

from app.database.database import get_db
from app.modules.organizations.schemas import OrganizationCreate, OrganizationOut
from app.modules.organizations.service import OrganizationService

organizations_router = APIRouter(prefix="/organizations", tags=["Organizations"])


@organizations_router.post("/", response_model=OrganizationOut, status_code=status.HTTP_201_CREATED)
def create_organization(data: OrganizationCreate, db: Session = Depends(get_db)):
    """
    Registrar una organización (tenant). Su `id` es el valor del header X-Company-ID.
    """
    return OrganizationService(db).create_organization(data)


@organizations_router.get("/{organization_id}", response_model=OrganizationOut)
def get_organization(organization_id: UUID, db: Session = Depends(get_db)):
    return OrganizationService(db).require_organization(organization_id)
