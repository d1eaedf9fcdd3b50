"""
Máquina de estados de documentos e historial de cambios de estado.
"""
