"""Tasks assíncronas do módulo de pagamentos."""

from typing import Optional

import structlog
from celery import shared_task

from modules.payments.exceptions import ExternalServiceError
from modules.payments.services import PaymentProcessor

logger = structlog.get_logger(__name__)

GATEWAY_MAX_RETRIES = 5

_retry_policy = {
    "autoretry_for": (ExternalServiceError,),
    "retry_backoff": True,
    "retry_backoff_max": 600,
    "retry_jitter": True,
    "max_retries": GATEWAY_MAX_RETRIES,
}


@shared_task(bind=True, name="payments.process", **_retry_policy)
def process_payment(self, payment_id: str) -> Optional[str]:
    """Captura o pagamento no gateway do método de pagamento.

    Gateway indisponível: a task é reexecutada com backoff exponencial; na
    última tentativa o pagamento é marcado como falho.
    """
    retryable = self.request.retries < self.max_retries
    payment = PaymentProcessor().process_payment(payment_id, retryable=retryable)
    return payment.status if payment else None


@shared_task(bind=True, name="payments.confirm", **_retry_policy)
def confirm_payment(self, payment_id: str) -> Optional[str]:
    """Confirma um pagamento assíncrono (transferência bancária) no gateway."""
    retryable = self.request.retries < self.max_retries
    payment = PaymentProcessor().confirm_payment(payment_id, retryable=retryable)
    return payment.status if payment else None


@shared_task(name="payments.fail_stale")
def fail_stale_payments() -> int:
    """Marca como falhos os pagamentos presos em PROCESSING além do timeout."""
    failed = PaymentProcessor().fail_stale_payments()
    logger.info("payments.fail_stale_finished", failed=failed)
    return failed
