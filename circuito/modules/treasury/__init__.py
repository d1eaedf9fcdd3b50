"""
Cuentas de tesorería (bancos, caja) usadas como medios de cobro.
"""
