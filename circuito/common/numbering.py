"""
Numeración secuencial de comprobantes: "<prefijo>-NNNNNNNN".

Facturas y recibos: "0001-00000042" (punto de venta). Remitos: "RE 0002-00000042".
Cotizaciones: "VAL-2026-001", que pasa a "VAL-2026-1000" después del 999.
"""
from sqlalchemy import func
from sqlalchemy.orm import Session


def format_document_number(prefix: str, sequence: int, width: int = 8) -> str:
    return f"{prefix}-{sequence:0{width}d}"


def next_document_number(db: Session, column, prefix: str, *criteria, width: int = 8) -> str:
    """
    Siguiente número para `prefix`.

    El número más alto es el más largo y, entre los de igual largo, el mayor
    alfabéticamente; el máximo alfabético solo no alcanza cuando la secuencia
    supera los dígitos del relleno.
    """
    last = db.query(column).filter(column.like(f"{prefix}-%"), *criteria).order_by(
        func.length(column).desc(), column.desc()
    ).limit(1).scalar()
    sequence = 1
    if last:
        suffix = last[len(prefix) + 1:]
        sequence = int(suffix) + 1 if suffix.isdigit() else 1
    return format_document_number(prefix, sequence, width)
