"""
Módulo de Cotizaciones

ENTIDADES PRINCIPALES:
- Quote / QuoteItem: cotización con ítems y alternativas

FLUJO:
- DRAFT -> SENT -> ACCEPTED -> CONVERTED al generar factura o remito
- Facturación parcial desde el tablero: solo ítems en stock, por su
  cantidad pendiente completa
- Vencimiento automático de cotizaciones enviadas (Celery beat)
"""
