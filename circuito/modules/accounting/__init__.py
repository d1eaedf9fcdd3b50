"""
Asientos contables generados por la aprobación de recibos.
"""
