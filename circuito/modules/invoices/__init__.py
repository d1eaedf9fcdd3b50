"""
Facturas de venta generadas desde cotizaciones y remitos.
"""
