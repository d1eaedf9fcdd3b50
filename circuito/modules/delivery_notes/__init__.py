"""
Módulo de Remitos: preparación, despacho, entrega y facturación.
"""
