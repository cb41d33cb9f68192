from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("sku", models.CharField(db_index=True, max_length=100, unique=True)),
                ("description", models.TextField(blank=True)),
                ("is_bundle", models.BooleanField(default=False)),
                ("available", models.IntegerField(default=0, help_text="Units in stock and not reserved")),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Product",
                "verbose_name_plural": "Products",
                "db_table": "products",
                "ordering": ["name"],
                "indexes": [
                    models.Index(fields=["sku"], name="product_sku_idx"),
                    models.Index(fields=["is_bundle"], name="product_is_bundle_idx"),
                    models.Index(fields=["is_active"], name="product_is_active_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BundleItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("quantity", models.IntegerField(default=1, help_text="Units of the component per bundle")),
                ("bundle", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="bundle_items", to="products.product")),
                ("component", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="used_in_bundles", to="products.product")),
            ],
            options={
                "verbose_name": "Bundle Item",
                "verbose_name_plural": "Bundle Items",
                "db_table": "bundle_items",
                "constraints": [
                    models.UniqueConstraint(fields=("bundle", "component"), name="unique_bundle_component"),
                ],
            },
        ),
    ]
