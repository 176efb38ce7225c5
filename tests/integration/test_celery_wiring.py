"""Celery application, routing and task entry points."""

import pytest
import structlog

from config.celery import app, bind_task_context, clear_task_context
from modules.notifications.constants import NotificationType
from modules.notifications.tasks import send_order_confirmation
from modules.orders.constants import OrderStatus
from modules.orders.tasks import advance_order
from modules.payments.constants import PaymentStatus
from modules.payments.models import Payment
from modules.payments.tasks import confirm_payment, fail_stale_payments, process_payment

pytestmark = pytest.mark.integration


class TestCeleryConfiguration:
    def test_app_reads_django_settings(self):
        assert app.main == "fulfillment"
        assert app.conf.task_acks_late is True
        assert app.conf.worker_prefetch_multiplier == 1

    @pytest.mark.parametrize(
        "pattern,queue",
        [
            ("orders.*", "orders"),
            ("payments.*", "payments"),
            ("notifications.*", "notifications"),
            ("shipments.*", "shipments"),
            ("analytics.*", "analytics"),
        ],
    )
    def test_each_job_family_has_its_own_queue(self, pattern, queue):
        assert app.conf.task_routes[pattern] == {"queue": queue}

    def test_stale_sweep_is_scheduled(self):
        entry = app.conf.beat_schedule["payments-fail-stale"]
        assert entry["task"] == "payments.fail_stale"

    def test_tasks_are_registered_by_job_name(self):
        assert advance_order.name == "orders.advance"
        assert process_payment.name == "payments.process"
        assert confirm_payment.name == "payments.confirm"
        assert fail_stale_payments.name == "payments.fail_stale"
        assert send_order_confirmation.name == "notifications.order_confirmation"

    def test_task_run_binds_its_own_correlation_id(self):
        bind_task_context(task_id="task-123", task=advance_order)

        context = structlog.contextvars.get_contextvars()
        assert context["correlation_id"] == "task-123"
        assert context["task_name"] == "orders.advance"
        structlog.contextvars.clear_contextvars()

    def test_task_end_clears_the_log_context(self):
        bind_task_context(task_id="task-456", task=advance_order)

        clear_task_context(task_id="task-456", task=advance_order)

        assert structlog.contextvars.get_contextvars() == {}


class TestTaskEntryPoints:
    def test_advance_order_task_runs_the_saga(
        self, place_order, make_product, stock, card_method
    ):
        product = make_product("TASK-01")
        stock(product, 10)
        order = place_order((product, 1))

        result = advance_order.apply(args=[str(order.id)]).get()

        assert result == OrderStatus.COMPLETED

    def test_advance_order_task_ignores_unknown_orders(self):
        result = advance_order.apply(args=["01900000-0000-7000-8000-000000000000"]).get()
        assert result is None

    def test_process_payment_task(self, place_order, make_product, card_method):
        order = place_order((make_product("TASK-02"), 1))
        payment = Payment.objects.get(order=order)

        result = process_payment.apply(args=[str(payment.id)]).get()

        assert result == PaymentStatus.COMPLETED

    def test_fail_stale_task_with_nothing_stale(self):
        assert fail_stale_payments.apply().get() == 0

    def test_order_confirmation_task_notifies_customer(
        self, place_order, make_product, delivery, customer
    ):
        order = place_order((make_product("TASK-03"), 1))

        assert send_order_confirmation.apply(args=[str(order.id)]).get() is True

        (sent,) = delivery.of_type(NotificationType.ORDER_CONFIRMED)
        assert sent["recipient_id"] == str(customer.id)
        assert order.order_number in sent["message"]
