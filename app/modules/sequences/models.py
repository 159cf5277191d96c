from app.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func


class SequenceCounter(Base):
    """
    Contador atómico por clave (organización + propósito + año).

    Es el único estado compartido mutado por escritores concurrentes sin
    coordinación; solo se modifica con incremento atómico en el motor.
    """
    __tablename__ = "sequence_counters"

    key = Column(String(150), primary_key=True)
    seq = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
