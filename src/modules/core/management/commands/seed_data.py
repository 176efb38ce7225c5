from __future__ import annotations

import random
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from modules.customers.models import Cart, CartItem, Customer
from modules.inventory.models import InventoryRecord, Warehouse
from modules.payments.constants import PaymentMethodType
from modules.payments.models import PaymentMethod
from modules.products.models import Product, ProductStatus, ProductVariant


class Command(BaseCommand):
    help = "Seed database with demo fulfillment data."

    @transaction.atomic
    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        warehouses = self._seed_warehouses()
        products = self._seed_products()
        records = self._seed_inventory(warehouses, products)
        customers = self._seed_customers()
        methods = self._seed_payment_methods(customers)
        carts = self._seed_carts(customers, products)

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"warehouses={len(warehouses)}, "
                f"products={len(products)}, "
                f"inventory_records={records}, "
                f"customers={len(customers)}, "
                f"payment_methods={methods}, "
                f"carts={carts}"
            )
        )

    def _seed_warehouses(self) -> list[Warehouse]:
        self.stdout.write("Creating warehouses...")
        warehouses = []
        for code, name, priority in [
            ("MAIN", "Main distribution center", 0),
            ("OVERFLOW", "Overflow storage", 10),
        ]:
            warehouse, _ = Warehouse.objects.get_or_create(
                code=code, defaults={"name": name, "priority": priority}
            )
            warehouses.append(warehouse)
        self.stdout.write(self.style.SUCCESS("Creating warehouses... Done!"))
        return warehouses

    def _seed_products(self) -> list[Product]:
        self.stdout.write("Creating products...")
        products: list[Product] = []
        catalog = [
            ("ELEC-001", "Monitor 27\"", Decimal("329.90")),
            ("ELEC-002", "Mechanical Keyboard", Decimal("89.90")),
            ("ELEC-003", "Wireless Mouse", Decimal("39.90")),
            ("ELEC-004", "Laptop 14\"", Decimal("1199.00")),
            ("FURN-001", "Standing Desk", Decimal("499.00")),
            ("FURN-002", "Ergonomic Chair", Decimal("379.00")),
            ("OFF-001", "A4 Paper (500 sheets)", Decimal("6.90")),
            ("OFF-002", "Notebook", Decimal("4.50")),
        ]
        for sku, name, price in catalog:
            product, _ = Product.objects.get_or_create(
                sku=sku,
                defaults={"name": name, "price": price, "status": ProductStatus.ACTIVE},
            )
            products.append(product)

        chair = products[5]
        for suffix, label, override in [
            ("BLK", "Black", None),
            ("GRY", "Grey", Decimal("399.00")),
        ]:
            ProductVariant.objects.get_or_create(
                sku=f"{chair.sku}-{suffix}",
                defaults={"product": chair, "name": label, "price_override": override},
            )
        self.stdout.write(self.style.SUCCESS("Creating products... Done!"))
        return products

    def _seed_inventory(self, warehouses: list[Warehouse], products: list[Product]) -> int:
        self.stdout.write("Creating inventory...")
        created = 0
        for product in products:
            variants = list(product.variants.all()) or [None]
            for variant in variants:
                for warehouse in warehouses:
                    _, was_created = InventoryRecord.objects.get_or_create(
                        product=product,
                        variant=variant,
                        warehouse=warehouse,
                        defaults={"quantity": random.randint(0, 120)},
                    )
                    created += int(was_created)
        self.stdout.write(self.style.SUCCESS("Creating inventory... Done!"))
        return created

    def _seed_customers(self) -> list[Customer]:
        self.stdout.write("Creating customers...")
        customers: list[Customer] = []
        for name, email in [
            ("Ana Souza", "ana@example.com"),
            ("Bruno Lima", "bruno@example.com"),
            ("Carla Mendes", "carla@example.com"),
            ("Daniel Costa", "daniel@example.com"),
        ]:
            customer, _ = Customer.objects.get_or_create(
                email=email, defaults={"name": name, "is_active": True}
            )
            customers.append(customer)
        self.stdout.write(self.style.SUCCESS("Creating customers... Done!"))
        return customers

    def _seed_payment_methods(self, customers: list[Customer]) -> int:
        self.stdout.write("Creating payment methods...")
        created = 0
        method_types = [
            PaymentMethodType.CARD,
            PaymentMethodType.WALLET,
            PaymentMethodType.BANK_TRANSFER,
            PaymentMethodType.CARD,
        ]
        for customer, method_type in zip(customers, method_types):
            if customer.payment_methods.exists():
                continue
            PaymentMethod.objects.create(
                customer=customer,
                method_type=method_type,
                provider="fake",
                credentials={"token": f"tok_{customer.email.split('@')[0]}"},
                label=method_type.label,
                is_default=True,
            )
            created += 1
        self.stdout.write(self.style.SUCCESS("Creating payment methods... Done!"))
        return created

    def _seed_carts(self, customers: list[Customer], products: list[Product]) -> int:
        self.stdout.write("Creating carts...")
        created = 0
        for customer in customers:
            cart, was_created = Cart.objects.get_or_create(customer=customer)
            if not was_created:
                continue
            for product in random.sample(products, k=2):
                CartItem.objects.create(
                    cart=cart, product=product, quantity=random.randint(1, 3)
                )
            created += 1
        self.stdout.write(self.style.SUCCESS("Creating carts... Done!"))
        return created
