"""
Configuração do Celery para o saga de fulfillment de pedidos.

O módulo DJANGO_SETTINGS_MODULE é definido antes da instanciação da app,
garantindo que o Celery leia as settings do Django (prefixo CELERY_).
"""

import os

import structlog
from celery import Celery
from celery.signals import task_postrun, task_prerun

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("fulfillment")

# Lê configurações do Django com prefixo CELERY_
app.config_from_object("django.conf:settings", namespace="CELERY")

# Descobre tasks.py em cada app instalada
app.autodiscover_tasks()


@task_prerun.connect
def bind_task_context(task_id=None, task=None, **kwargs):
    """Cada execução de task recebe o próprio correlation_id nos logs."""
    from modules.core.middleware import bind_correlation_id

    bind_correlation_id(task_id, task_name=getattr(task, "name", ""))


@task_postrun.connect
def clear_task_context(**kwargs):
    """Limpa o contexto de log ao fim da task; o worker reaproveita a thread."""
    structlog.contextvars.clear_contextvars()
