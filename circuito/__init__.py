"""
Circuito de ventas: cotizaciones, remitos, facturas y recibos de cobranza.
"""
