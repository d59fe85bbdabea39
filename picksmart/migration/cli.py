"""
Command-line entry point for export migration.

Exit code 0 on success, 1 on any fatal error. Per-record failures are
tallied in the summary and do not change the exit code.
"""
import argparse
import asyncio
import os
import sys
from typing import List, Optional

from picksmart.config import config
from picksmart.errors import InputMalformedError, StoreError
from picksmart.logger import logger
from picksmart.migration.migrator import CatalogMigrator, preview_products
from picksmart.migration.validation import migration_status, validate_counts
from picksmart.reconciler import MigrationReport, UpsertMode
from picksmart.store import create_store

COMMANDS = ("products", "customers", "orders", "all", "test", "validate", "status", "help")

HELP_TEXT = """
Picksmart Stores export migration

Commands:
  products [csv-file]        Migrate products, variants, images, metafields and categories
  customers [csv-file]       Migrate customers
  orders [csv-file]          Migrate orders with line items
  all                        Products, then customers and orders when their files exist
  test [csv-file] [max]      Parse and aggregate products without writing (default max: 5)
  validate                   Check migrated counts
  status                     Show sample categories and products
  help                       Show this help

Options:
  --update-existing          Overwrite records that already exist instead of skipping them

Default files come from PRODUCTS_CSV, CUSTOMERS_CSV and ORDERS_CSV.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="picksmart-migrate",
        description="Migrate platform CSV exports into the Picksmart store.",
        add_help=False,
    )
    parser.add_argument("command", nargs="?", default="help", help="One of: " + ", ".join(COMMANDS))
    parser.add_argument("file", nargs="?", help="CSV export to read")
    parser.add_argument("max", nargs="?", type=int, default=5, help="Products to show for 'test'")
    parser.add_argument("--update-existing", action="store_true",
                        help="Update existing records instead of skipping them")
    parser.add_argument("-h", "--help", action="store_true", dest="show_help")
    return parser


def print_report(report: MigrationReport):
    print(f"\n📊 {report.entity.capitalize()} migration summary")
    print(f"   ✅ Created: {report.created}")
    print(f"   🔄 Updated: {report.updated}")
    print(f"   ⏭️  Skipped: {report.skipped}")
    print(f"   ❌ Failed:  {report.failed}")
    print(f"   Total:      {report.total}")
    for key, error in report.failures[:10]:
        print(f"      - {key}: {error}")


def print_preview(file_path: str, max_products: int):
    products = preview_products(file_path, max_products)
    print(f"🧪 Parsed {len(products)} products from {file_path}\n")
    for product in products:
        print(f"📦 {product.handle}: {product.title}")
        print(f"   Category: {product.category_path or '-'}")
        print(f"   Variants: {len(product.variants)}, Images: {len(product.images)}, "
              f"Metafields: {len(product.metafields)}, Stock: {product.stock}")
        for variant in product.variants:
            print(f"     • {variant.title} sku={variant.sku or '-'} price={variant.price}")


async def run(args: argparse.Namespace) -> int:
    command = args.command

    if command == "test":
        print_preview(args.file or config.PRODUCTS_CSV, args.max)
        print("\n✅ Test completed successfully!")
        return 0

    for path in _required_files(command, args.file):
        if not os.path.exists(path):
            print(f"❌ File not found: {path}", file=sys.stderr)
            return 1

    mode = UpsertMode.UPDATE if args.update_existing else UpsertMode.SKIP_EXISTING
    store = create_store()
    await store.open()

    try:
        migrator = CatalogMigrator(store, mode)

        if command == "products":
            print_report(await migrator.migrate_products(args.file or config.PRODUCTS_CSV))

        elif command == "customers":
            print_report(await migrator.migrate_customers(args.file or config.CUSTOMERS_CSV))

        elif command == "orders":
            print_report(await migrator.migrate_orders(args.file or config.ORDERS_CSV))

        elif command == "all":
            print("📦 Step 1: Migrating products...")
            print_report(await migrator.migrate_products(config.PRODUCTS_CSV))

            for step, entity, path, migrate in (
                (2, "customers", config.CUSTOMERS_CSV, migrator.migrate_customers),
                (3, "orders", config.ORDERS_CSV, migrator.migrate_orders),
            ):
                if os.path.exists(path):
                    print(f"\n📋 Step {step}: Migrating {entity}...")
                    print_report(await migrate(path))
                else:
                    print(f"\n⚠️  Step {step}: Skipping {entity} ({path} not found)")

        elif command == "validate":
            counts, problems = await validate_counts(store)
            for name, count in counts.items():
                print(f"   {name}: {count}")
            if problems:
                for problem in problems:
                    print(f"❌ {problem}", file=sys.stderr)
                return 1
            print("\n✅ Basic validation passed")
            return 0

        elif command == "status":
            status = await migration_status(store)
            print("📁 Categories:")
            for category in status["categories"]:
                print(f"   {'  ' * category['level']}{category['name']} ({category['path']})")
            print("📦 Products:")
            for product in status["products"]:
                print(f"   {product['handle']}: {product['title']} [{product['status']}]")
            return 0

        print(f"\n✅ {command.capitalize()} migration completed successfully!")
        return 0

    finally:
        await store.close()


def _required_files(command: str, file_path: Optional[str]) -> List[str]:
    if command == "products":
        return [file_path or config.PRODUCTS_CSV]
    if command == "customers":
        return [file_path or config.CUSTOMERS_CSV]
    if command == "orders":
        return [file_path or config.ORDERS_CSV]
    if command == "all":
        return [config.PRODUCTS_CSV]
    return []


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.show_help or args.command == "help":
        print(HELP_TEXT)
        return 0

    if args.command not in COMMANDS:
        print(f"❌ Unknown command: {args.command}", file=sys.stderr)
        print(HELP_TEXT)
        return 1

    try:
        return asyncio.run(run(args))
    except FileNotFoundError as e:
        print(f"❌ File not found: {e.filename or e}", file=sys.stderr)
    except InputMalformedError as e:
        print(f"❌ Malformed export: {e}", file=sys.stderr)
    except StoreError as e:
        print(f"❌ Store unavailable: {e}", file=sys.stderr)
    except Exception as e:
        logger.error(f"Migration failed: {e}", exc_info=True)
        print(f"❌ Migration failed: {e}", file=sys.stderr)

    return 1


if __name__ == "__main__":
    sys.exit(main())
