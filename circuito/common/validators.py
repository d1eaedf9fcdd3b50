"""
Validadores específicos para Argentina
"""
import re
from typing import Optional


CUIT_WEIGHTS = [5, 4, 3, 2, 7, 6, 5, 4, 3, 2]
CUIT_PREFIXES = {"20", "23", "24", "27", "30", "33", "34"}


def clean_cuit(cuit: str) -> str:
    """Quita guiones, puntos y espacios de un CUIT/CUIL."""
    return re.sub(r'[\.\s\-]', '', cuit or '')


def calculate_cuit_dv(base: str) -> Optional[int]:
    """
    Calcula el dígito verificador de un CUIT a partir de sus primeros 10 dígitos.
    Retorna None si la base no es válida.
    """
    if not base or not base.isdigit() or len(base) != 10:
        return None

    suma = sum(int(digito) * peso for digito, peso in zip(base, CUIT_WEIGHTS))
    resto = 11 - (suma % 11)

    if resto == 11:
        return 0
    if resto == 10:
        return 9
    return resto


def validate_cuit(cuit: str) -> bool:
    """
    Valida CUIT/CUIL argentino.
    - 11 dígitos (con o sin guiones: XX-XXXXXXXX-X)
    - Prefijo de tipo de contribuyente conocido
    - Dígito verificador correcto
    """
    cleaned = clean_cuit(cuit)

    if not cleaned.isdigit() or len(cleaned) != 11:
        return False

    if cleaned[:2] not in CUIT_PREFIXES:
        return False

    return calculate_cuit_dv(cleaned[:10]) == int(cleaned[-1])


def format_cuit(cuit: str) -> str:
    """
    Formatea CUIT al formato estándar XX-XXXXXXXX-X
    """
    if not validate_cuit(cuit):
        return cuit  # Retorna sin cambios si no es válido

    cleaned = clean_cuit(cuit)
    return f"{cleaned[:2]}-{cleaned[2:10]}-{cleaned[10]}"
