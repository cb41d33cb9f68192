"""
Tests for bundle availability.
"""

from decimal import Decimal
from django.test import SimpleTestCase, TestCase

from order_fulfillment.exceptions import ValidationException
from products.models import Product, BundleItem
from products.services.bundle_calculator import (
    BundleComponent,
    calculate_possible_quantity,
    enrich_product_with_possible_quantity,
)


def components(*pairs):
    return [{"quantity": quantity, "available": available} for quantity, available in pairs]


class CalculatePossibleQuantityTest(SimpleTestCase):
    """Test the bottleneck calculation."""

    def test_scarcest_component_limits_bundles(self):
        self.assertEqual(calculate_possible_quantity(components((1, 20), (1, 5), (1, 3))), 3)

    def test_per_bundle_quantity_is_respected(self):
        self.assertEqual(calculate_possible_quantity(components((1, 20), (2, 5), (2, 3))), 1)

    def test_empty_bundle_has_no_availability(self):
        self.assertEqual(calculate_possible_quantity([]), 0)

    def test_non_positive_values_yield_zero(self):
        self.assertEqual(calculate_possible_quantity(components((0, 10), (1, 10))), 0)
        self.assertEqual(calculate_possible_quantity(components((-1, 10))), 0)
        self.assertEqual(calculate_possible_quantity(components((1, 0))), 0)
        self.assertEqual(calculate_possible_quantity(components((1, -4))), 0)

    def test_malformed_values_yield_zero(self):
        for bad in ("abc", None, float("nan"), float("inf"), True, []):
            self.assertEqual(calculate_possible_quantity(components((bad, 10))), 0, bad)
            self.assertEqual(calculate_possible_quantity(components((1, bad))), 0, bad)

    def test_numeric_strings_and_fractions(self):
        self.assertEqual(calculate_possible_quantity(components(("2", "9"))), 4)
        self.assertEqual(calculate_possible_quantity(components((Decimal("0.5"), 3))), 6)
        self.assertEqual(calculate_possible_quantity(components((1.5, 4.4))), 2)

    def test_missing_field_raises(self):
        with self.assertRaises(ValidationException) as ctx:
            calculate_possible_quantity([{"quantity": 1, "available": 5}, {"sku": "CASE", "quantity": 1}])

        self.assertEqual(ctx.exception.details["missing"], ["available"])

    def test_non_mapping_raises(self):
        with self.assertRaises(ValidationException):
            calculate_possible_quantity([(1, 5)])

    def test_accepts_bundle_components(self):
        parts = [BundleComponent("LID", 1, 7), BundleComponent("CUP", 2, 9)]

        self.assertEqual(calculate_possible_quantity(parts), 4)


class EnrichProductTest(TestCase):
    """Test availability views of stored products."""

    def setUp(self):
        """Set up test data."""
        self.cup = Product.objects.create(name="Cup", sku="CUP", available=20)
        self.lid = Product.objects.create(name="Lid", sku="LID", available=5)
        self.sleeve = Product.objects.create(name="Sleeve", sku="SLEEVE", available=3)
        self.bundle = Product.objects.create(name="Coffee Set", sku="SET", is_bundle=True, available=99)
        for component, quantity in ((self.cup, 1), (self.lid, 2), (self.sleeve, 2)):
            BundleItem.objects.create(bundle=self.bundle, component=component, quantity=quantity)

    def test_non_bundle(self):
        data = enrich_product_with_possible_quantity(self.cup)

        self.assertIsNone(data["possible_quantity"])
        self.assertEqual(data["available"], 20)
        self.assertEqual(data["components"], [])

    def test_bundle_ignores_its_own_stock(self):
        data = enrich_product_with_possible_quantity(self.bundle)

        self.assertEqual(data["possible_quantity"], 1)
        self.assertEqual(data["available"], 1)
        self.assertEqual(len(data["components"]), 3)

    def test_bundle_reflects_current_stock(self):
        Product.objects.filter(pk=self.sleeve.pk).update(available=1)

        data = enrich_product_with_possible_quantity(self.bundle)

        self.assertEqual(data["possible_quantity"], 0)
