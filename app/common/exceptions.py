"""
Errores de dominio.

Todos heredan de HTTPException para que los servicios los lancen directamente
y FastAPI los traduzca sin handlers adicionales.
"""
import logging

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)


class ValidationError(HTTPException):
    """Datos inválidos o incompletos. Nunca se reintenta."""

    def __init__(self, detail):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class NotFoundError(HTTPException):
    """El recurso no existe dentro de la organización del llamador."""

    def __init__(self, detail="Recurso no encontrado"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class NegativeBalanceError(HTTPException):
    """Un ajuste dejaría una cantidad o saldo por debajo de cero."""

    def __init__(self, detail):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class ConcurrencyConflictError(HTTPException):
    """La versión esperada no coincide con la almacenada."""

    def __init__(self, detail="El documento fue modificado por otra operación"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class TransientInfrastructureError(HTTPException):
    """La capa de persistencia no está disponible; el llamador puede reintentar."""

    def __init__(self, detail="Servicio de persistencia no disponible"):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            headers={"Retry-After": "1"}
        )


class MirroringError(Exception):
    """Falló la copia secundaria del libro; se registra y no se propaga."""

    def __init__(self, payment_id, cause: Exception):
        self.payment_id = payment_id
        self.cause = cause
        super().__init__(f"Mirror of payment {payment_id} failed: {cause}")

    def log(self):
        logger.error(str(self), exc_info=self.cause)
