from django.contrib import admin

from shop.infra.models import (
    CustomerORM,
    IdempotencyKey,
    OrderItemORM,
    OrderORM,
    OrderTimelineEntryORM,
    ProductORM,
    WalletORM,
    WalletTransactionORM,
)
from shop.infra.outbox import OutboxEvent


@admin.register(CustomerORM)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "email", "role", "is_active", "created_at")
    list_filter = ("role", "is_active")
    search_fields = ("name", "email")


@admin.register(ProductORM)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "category", "price", "stock", "is_active")
    list_filter = ("category", "is_active")
    search_fields = ("name",)

    def get_readonly_fields(self, request, obj=None):
        # Stock of an existing product only moves through placement and cancellation.
        if obj is not None:
            return ("stock",)
        return ()


class OrderItemInline(admin.TabularInline):
    model = OrderItemORM
    extra = 0
    readonly_fields = ("product", "product_name", "quantity", "price_at_order", "subtotal", "image_url")
    can_delete = False


class OrderTimelineInline(admin.TabularInline):
    model = OrderTimelineEntryORM
    extra = 0
    readonly_fields = ("status", "description", "timestamp", "location")
    can_delete = False


@admin.register(OrderORM)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "customer", "status", "payment_status", "payment_method", "total_amount", "created_at")
    list_filter = ("status", "payment_status", "payment_method", "created_at")
    search_fields = ("id", "customer__name", "customer__email")
    readonly_fields = ("total_amount", "payment_status", "cancelled_at", "cancelled_by")
    inlines = (OrderItemInline, OrderTimelineInline)


@admin.register(WalletORM)
class WalletAdmin(admin.ModelAdmin):
    list_display = ("id", "customer", "balance", "created_at")
    search_fields = ("customer__name",)
    readonly_fields = ("id", "customer", "balance")


@admin.register(WalletTransactionORM)
class WalletTransactionAdmin(admin.ModelAdmin):
    list_display = ("id", "wallet", "direction", "status", "amount", "order_id", "created_at")
    list_filter = ("direction", "status", "created_at")


@admin.register(IdempotencyKey)
class IdempotencyKeyAdmin(admin.ModelAdmin):
    list_display = ("key", "user_id", "operation", "created_at")
    list_filter = ("operation",)


@admin.register(OutboxEvent)
class OutboxEventAdmin(admin.ModelAdmin):
    list_display = ("id", "aggregate_type", "event_type", "processed", "retry_count", "created_at")
    list_filter = ("aggregate_type", "event_type", "processed")
