"""
Puertos y adaptadores hacia sistemas externos (Colppy, BCRA).
"""
