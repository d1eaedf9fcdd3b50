"""
Módulo de email: envío SMTP con plantillas Jinja2 y tareas Celery.
"""
