"""
Validadores específicos para India (GSTIN, códigos de estado)
"""
import re
from typing import Optional


GSTIN_PATTERN = re.compile(r'^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$')
GSTIN_CHARSET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def clean_gstin(gstin: str) -> str:
    """Quita espacios y guiones y pasa a mayúsculas"""
    return re.sub(r'[\s\-]', '', gstin or '').upper()


def gstin_check_digit(base: str) -> str:
    """
    Calcula el dígito de control de un GSTIN (primeros 14 caracteres).
    Suma ponderada en base 36 con factores alternos 1 y 2.
    """
    total = 0
    for i, char in enumerate(base):
        product = GSTIN_CHARSET.index(char) * (2 if i % 2 else 1)
        total += product // 36 + product % 36
    return GSTIN_CHARSET[(36 - total % 36) % 36]


def validate_gstin(gstin: str) -> bool:
    """
    Valida un GSTIN.
    - 15 caracteres: estado (2) + PAN (10) + entidad (1) + 'Z' + control (1)
    - El dígito de control debe coincidir
    """
    cleaned = clean_gstin(gstin)
    if not GSTIN_PATTERN.match(cleaned):
        return False
    return gstin_check_digit(cleaned[:14]) == cleaned[14]


def format_gstin(gstin: str) -> str:
    """Formatea un GSTIN válido; retorna sin cambios si no es válido"""
    if not validate_gstin(gstin):
        return gstin
    return clean_gstin(gstin)


def state_code_from_gstin(gstin: str) -> Optional[str]:
    """Código de estado (dos dígitos) de un GSTIN válido"""
    if not validate_gstin(gstin):
        return None
    return clean_gstin(gstin)[:2]
