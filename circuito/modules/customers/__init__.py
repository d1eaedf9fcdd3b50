"""
Módulo de Clientes

CRUD de clientes con validación de CUIT y resumen de cuenta corriente
con consulta informativa a la Central de Deudores del BCRA.
"""
