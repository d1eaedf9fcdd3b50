"""
Validación de JWT y control de roles.
"""
