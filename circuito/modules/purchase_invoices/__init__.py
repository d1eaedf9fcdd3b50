"""
Módulo de Facturas de compra: carga, aprobación y pagos a proveedores.
"""
