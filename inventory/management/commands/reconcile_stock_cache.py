import uuid

from django.core.management.base import BaseCommand, CommandError

from inventory.services import format_quantity, reconcile_stock_cache


class Command(BaseCommand):
    help = "Compare each product's cached stock total with its movement ledger and optionally repair drift."

    def add_arguments(self, parser):
        parser.add_argument(
            "--apply",
            action="store_true",
            help="Overwrite drifted cached totals with the ledger sum.",
        )
        parser.add_argument(
            "--product",
            dest="product_ids",
            action="append",
            help="Product UUID to check (repeatable). Defaults to all products.",
        )

    def _parse_product_ids(self, raw_ids):
        product_ids = []
        for raw in raw_ids or []:
            try:
                product_ids.append(uuid.UUID(str(raw).strip()))
            except ValueError:
                raise CommandError(f"Invalid product UUID: {raw!r}.")
        return product_ids

    def handle(self, *args, **options):
        apply_changes = options["apply"]
        product_ids = self._parse_product_ids(options.get("product_ids"))
        drifts = reconcile_stock_cache(product_ids=product_ids or None, apply=apply_changes)

        if not drifts:
            self.stdout.write(self.style.SUCCESS("Stock cache matches the movement ledger."))
            return

        self.stdout.write(self.style.WARNING(f"Found {len(drifts)} product(s) with cache drift."))
        for drift in drifts:
            self.stdout.write(
                f"- {drift.product_id}: cached={format_quantity(drift.cached)} ledger={format_quantity(drift.ledger)}"
            )

        if not apply_changes:
            self.stdout.write(self.style.WARNING("Dry run only. Re-run with --apply to repair cached totals."))
            return

        self.stdout.write(self.style.SUCCESS(f"Repaired cached stock for {len(drifts)} product(s)."))
