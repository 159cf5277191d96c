"""
Middlewares HTTP: contexto de organización (tenant) y cabeceras de seguridad
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from uuid import UUID
import logging
import time

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Company-ID"


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Resuelve la organización activa desde X-Company-ID y la deja en
    request.state.tenant_id. Toda consulta de negocio se filtra por ella.
    """

    # Rutas globales: catálogo de tasas, alta de organizaciones y documentación
    EXEMPT_PREFIXES = (
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
        "/taxes",
        "/organizations",
    )

    def _is_exempt(self, request: Request) -> bool:
        path = request.url.path
        return request.method == "OPTIONS" or path == "/" or path.startswith(self.EXEMPT_PREFIXES)

    async def dispatch(self, request: Request, call_next):
        if self._is_exempt(request):
            return await call_next(request)

        raw_tenant = request.headers.get(TENANT_HEADER)
        if not raw_tenant:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"detail": f"Falta la cabecera {TENANT_HEADER}"}
            )

        try:
            tenant_id = UUID(raw_tenant)
        except ValueError:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"detail": f"{TENANT_HEADER} inválido, debe ser un UUID"}
            )

        request.state.tenant_id = tenant_id
        started = time.perf_counter()
        response = await call_next(request)
        logger.debug(
            f"{request.method} {request.url.path} tenant={tenant_id} "
            f"-> {response.status_code} in {(time.perf_counter() - started) * 1000:.1f}ms"
        )
        response.headers["X-Tenant-ID"] = str(tenant_id)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    SECURITY_HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for header, value in self.SECURITY_HEADERS.items():
            response.headers[header] = value
        return response
