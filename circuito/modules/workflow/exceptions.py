"""
Errores de la máquina de estados.

Todos son todo-o-nada: cuando se lanzan, el documento no fue modificado.
"""
from typing import Any, Optional


class WorkflowError(Exception):
    """Base de errores de transición"""

    code = "workflow_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidTransition(WorkflowError):
    """La arista no existe en el grafo del documento (o no es invocable por el usuario)"""

    code = "invalid_transition"

    def __init__(self, document_type: str, from_status: Any, to_status: Any, detail: Optional[str] = None):
        self.document_type = document_type
        self.from_status = from_status
        self.to_status = to_status
        message = f"No se puede cambiar de {_label(from_status)} a {_label(to_status)}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MissingReason(WorkflowError):
    """La transición exige un motivo y no se informó (o está en blanco)"""

    code = "missing_reason"

    def __init__(self, from_status: Any, to_status: Any):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"El cambio de {_label(from_status)} a {_label(to_status)} requiere un motivo"
        )


class GuardFailed(WorkflowError):
    """Una precondición externa de la transición no se cumple"""

    code = "guard_failed"

    def __init__(self, message: str, metric: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.metric = metric
        self.value = value


def _label(status: Any) -> str:
    return getattr(status, "value", str(status))
