from typing import Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from app.common.exceptions import NotFoundError, ValidationError
from app.modules.organizations.models import Organization
from app.modules.organizations.schemas import OrganizationCreate

logger = logging.getLogger(__name__)


class OrganizationService:
    def __init__(self, db: Session):
        self.db = db

    def create_organization(self, data: OrganizationCreate) -> Organization:
        try:
            organization = Organization(**data.model_dump())
            self.db.add(organization)
            self.db.commit()
            self.db.refresh(organization)
            logger.info(f"Organization {organization.id} created ({organization.name})")
            return organization
        except IntegrityError:
            self.db.rollback()
            raise ValidationError(f"Ya existe una organización con el GSTIN {data.gstin}")

    def get_organization(self, organization_id: UUID) -> Optional[Organization]:
        """Organización o None; el llamador decide si es un error"""
        return self.db.query(Organization).filter(Organization.id == organization_id).first()

    def require_organization(self, organization_id: UUID) -> Organization:
        organization = self.get_organization(organization_id)
        if not organization:
            raise NotFoundError("Organización no encontrada")
        return organization
