"""
Módulo de Recibos de cobranza

ENTIDADES PRINCIPALES:
- Receipt: recibo con facturas imputadas, retenciones y medios de cobro

REGLAS:
- total a cobrar = total imputado - retenciones
- solo se aprueba si |total a cobrar - total cobrado| < 0.01
- la aprobación genera el asiento REC y actualiza facturas y saldo del cliente
"""
