"""
Agregador de retenciones sufridas en un cobro.

Reduce las retenciones cargadas (IIBB por jurisdicción, IVA, SUSS y
Ganancias) a un total y a una estructura agrupada lista para persistir y
para el asiento contable:

- solo se incluyen líneas con importe > 0; las vacías o en cero se descartan
- los números de certificado en blanco se omiten (None, nunca "")
- todas las líneas IIBB quedan en un único grupo IIBB
- IVA, SUSS y GANANCIAS generan a lo sumo un grupo de una línea cada uno
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from circuito.common.money import ZERO, to_money


class WithholdingGroupType(str, Enum):
    IIBB = "IIBB"
    IVA = "IVA"
    SUSS = "SUSS"
    GANANCIAS = "GANANCIAS"


SINGLE_LINE_GROUPS = (WithholdingGroupType.IVA, WithholdingGroupType.SUSS, WithholdingGroupType.GANANCIAS)

# Jurisdicciones IIBB disponibles: withholdingType -> etiqueta
IIBB_JURISDICTIONS: Dict[str, str] = {
    "IIBB_CABA": "CABA",
    "IIBB_BUENOS_AIRES": "Buenos Aires",
    "IIBB_CORDOBA": "Córdoba",
    "IIBB_SANTA_FE": "Santa Fe",
    "IIBB_MENDOZA": "Mendoza",
    "IIBB_TUCUMAN": "Tucumán",
    "IIBB_SALTA": "Salta",
    "IIBB_ENTRE_RIOS": "Entre Ríos",
    "IIBB_OTRAS": "Otras Provincias",
}

# Tipo de retención -> cuenta contable. Todas las jurisdicciones IIBB van a la misma cuenta.
WITHHOLDING_ACCOUNT_MAPPING: Dict[str, str] = {
    **{code: "114301" for code in IIBB_JURISDICTIONS},
    "IVA": "114105",
    "GANANCIAS": "114101",
    "SUSS": "213201",
}


class WithholdingError(ValueError):
    pass


@dataclass(frozen=True)
class WithholdingLine:
    withholding_type: str
    amount: Decimal
    jurisdiction_label: Optional[str] = None
    certificate_number: Optional[str] = None

    def as_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"withholdingType": self.withholding_type, "amount": self.amount}
        if self.jurisdiction_label:
            payload["jurisdictionLabel"] = self.jurisdiction_label
        if self.certificate_number:
            payload["certificateNumber"] = self.certificate_number
        return payload


@dataclass(frozen=True)
class WithholdingGroup:
    group_type: WithholdingGroupType
    lines: tuple

    @property
    def total_amount(self) -> Decimal:
        return sum((line.amount for line in self.lines), ZERO)

    def as_payload(self) -> Dict[str, Any]:
        return {"groupType": self.group_type.value, "lines": [line.as_payload() for line in self.lines]}


@dataclass(frozen=True)
class WithholdingSummary:
    groups: tuple = field(default_factory=tuple)

    @property
    def total_withholdings(self) -> Decimal:
        return sum((group.total_amount for group in self.groups), ZERO)

    def group(self, group_type: WithholdingGroupType) -> Optional[WithholdingGroup]:
        return next((g for g in self.groups if g.group_type == group_type), None)

    def as_payload(self) -> List[Dict[str, Any]]:
        return [group.as_payload() for group in self.groups]


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _included_amount(raw_amount: Any) -> Optional[Decimal]:
    amount = to_money(raw_amount)
    if amount < ZERO:
        raise WithholdingError("El importe de una retención no puede ser negativo")
    return amount if amount > ZERO else None


def _iibb_line(raw: Mapping[str, Any]) -> Optional[WithholdingLine]:
    amount = _included_amount(raw.get("amount"))
    if amount is None:
        return None
    withholding_type = raw.get("withholding_type") or raw.get("withholdingType")
    if withholding_type not in IIBB_JURISDICTIONS:
        raise WithholdingError(f"Jurisdicción IIBB desconocida: {withholding_type}")
    label = _blank_to_none(raw.get("jurisdiction_label") or raw.get("jurisdictionLabel"))
    return WithholdingLine(
        withholding_type=withholding_type,
        amount=amount,
        jurisdiction_label=label or IIBB_JURISDICTIONS[withholding_type],
        certificate_number=_blank_to_none(raw.get("certificate_number") or raw.get("certificateNumber")),
    )


def _single_line(group_type: WithholdingGroupType, raw: Mapping[str, Any]) -> Optional[WithholdingLine]:
    amount = _included_amount(raw.get("amount"))
    if amount is None:
        return None
    return WithholdingLine(
        withholding_type=group_type.value,
        amount=amount,
        certificate_number=_blank_to_none(raw.get("certificate_number") or raw.get("certificateNumber")),
    )


def aggregate_withholdings(
    iibb_lines: Iterable[Mapping[str, Any]] = (),
    others: Optional[Mapping[Any, Mapping[str, Any]]] = None,
) -> WithholdingSummary:
    """
    Agrega las retenciones tal como se cargan en el formulario de cobro.

    Args:
        iibb_lines: líneas por jurisdicción {withholding_type, jurisdiction_label?,
            certificate_number?, amount}
        others: {"IVA"|"SUSS"|"GANANCIAS": {certificate_number?, amount}}
    """
    groups = []

    iibb = tuple(line for line in (_iibb_line(raw) for raw in iibb_lines) if line is not None)
    if iibb:
        groups.append(WithholdingGroup(WithholdingGroupType.IIBB, iibb))

    others = {WithholdingGroupType(key): value for key, value in (others or {}).items()}
    for group_type in SINGLE_LINE_GROUPS:
        raw = others.get(group_type)
        if raw is None:
            continue
        line = _single_line(group_type, raw)
        if line is not None:
            groups.append(WithholdingGroup(group_type, (line,)))

    return WithholdingSummary(groups=tuple(groups))


def normalize_withholding_groups(groups: Iterable[Mapping[str, Any]]) -> WithholdingSummary:
    """
    Normaliza los grupos que llegan en el payload de creación de un recibo.

    Los grupos IIBB repetidos se fusionan en uno. Un grupo IVA/SUSS/GANANCIAS
    con más de una línea con importe es un error.
    """
    iibb_lines: List[Mapping[str, Any]] = []
    others: Dict[WithholdingGroupType, Mapping[str, Any]] = {}

    for group in groups:
        raw_type = group.get("group_type") or group.get("groupType")
        try:
            group_type = WithholdingGroupType(raw_type)
        except ValueError:
            raise WithholdingError(f"Tipo de retención desconocido: {raw_type}")

        lines = list(group.get("lines") or [])
        if group_type == WithholdingGroupType.IIBB:
            iibb_lines.extend(lines)
            continue

        with_amount = [line for line in lines if to_money(line.get("amount")) != ZERO]
        if len(with_amount) > 1 or (with_amount and group_type in others):
            raise WithholdingError(f"La retención {group_type.value} admite una sola línea")
        if with_amount:
            others[group_type] = with_amount[0]

    return aggregate_withholdings(iibb_lines, others)
