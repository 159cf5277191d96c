"""
Asignación de números de documento.

El incremento y la lectura del contador se hacen en una única sentencia
(INSERT ... ON CONFLICT DO UPDATE ... RETURNING), nunca leer-y-escribir.
Cada asignación usa su propia transacción corta: un número asignado a una
factura que luego se revierte queda como hueco, nunca se repite.
"""

from datetime import date
from typing import Optional, Union
from uuid import UUID
import logging

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from app.common.exceptions import TransientInfrastructureError
from app.core.config import settings
from app.modules.sequences.models import SequenceCounter
from app.modules.sequences.schemas import SequencePurpose

logger = logging.getLogger(__name__)


_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

PURPOSE_PREFIXES = {
    SequencePurpose.INVOICE: lambda: settings.INVOICE_NUMBER_PREFIX,
    SequencePurpose.EMPLOYEE: lambda: settings.EMPLOYEE_NUMBER_PREFIX,
}


def build_sequence_key(
    scope: Optional[Union[UUID, str]],
    purpose: Union[SequencePurpose, str],
    year: Optional[int] = None
) -> str:
    """Clave del contador: propósito + organización + año (reinicio anual sin limpieza)"""
    purpose_value = purpose.value if isinstance(purpose, SequencePurpose) else str(purpose)
    return f"{purpose_value}_{scope or 'global'}_{year or date.today().year}"


def format_document_number(prefix: str, year: int, seq: int, width: Optional[int] = None) -> str:
    """PREFIX-YEAR-000N"""
    pad = width if width is not None else settings.SEQUENCE_PAD_WIDTH
    return f"{prefix}-{year}-{seq:0{pad}d}"


class SequenceAllocator:
    """Contador compartido con incremento atómico en la base de datos."""

    def __init__(self, engine: Engine):
        self.engine = engine
        dialect = engine.dialect.name
        if dialect not in _DIALECT_INSERTS:
            raise ValueError(f"Unsupported dialect for sequence allocation: {dialect}")
        self._insert = _DIALECT_INSERTS[dialect]

    def next(self, key: str) -> int:
        """
        Siguiente entero de la secuencia `key`.

        Único y estrictamente creciente por clave entre llamadores concurrentes.
        Si el almacenamiento falla se lanza TransientInfrastructureError;
        nunca se devuelve un valor por defecto.
        """
        table = SequenceCounter.__table__
        stmt = self._insert(table).values(key=key, seq=1)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.key],
            set_={"seq": table.c.seq + 1}
        ).returning(table.c.seq)

        try:
            with self.engine.begin() as conn:
                value = conn.execute(stmt).scalar_one()
        except SQLAlchemyError as e:
            logger.error(f"Sequence allocation failed for key {key}: {e}")
            raise TransientInfrastructureError(
                detail="No fue posible asignar el número de documento, intente nuevamente"
            )

        logger.debug(f"Allocated {value} for sequence {key}")
        return value

    def allocate_document_number(
        self,
        scope: Optional[Union[UUID, str]],
        purpose: Union[SequencePurpose, str] = SequencePurpose.INVOICE,
        prefix: Optional[str] = None
    ) -> str:
        """Asignar y formatear el siguiente número de documento"""
        purpose = SequencePurpose(purpose)
        year = date.today().year
        seq = self.next(build_sequence_key(scope, purpose, year))
        number = format_document_number(prefix or PURPOSE_PREFIXES[purpose](), year, seq)
        logger.info(f"Allocated document number {number} ({purpose.value}) for scope {scope}")
        return number
