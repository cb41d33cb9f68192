from django.contrib import admin
from .models import Product, BundleItem


class BundleItemInline(admin.TabularInline):
    model = BundleItem
    fk_name = "bundle"
    extra = 0
    autocomplete_fields = ["component"]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["name", "sku", "is_bundle", "available", "is_active", "created_at"]
    list_filter = ["is_bundle", "is_active", "created_at"]
    search_fields = ["name", "sku", "description"]
    readonly_fields = ["created_at", "updated_at"]
    inlines = [BundleItemInline]


@admin.register(BundleItem)
class BundleItemAdmin(admin.ModelAdmin):
    list_display = ["bundle", "component", "quantity"]
    search_fields = ["bundle__sku", "component__sku"]
