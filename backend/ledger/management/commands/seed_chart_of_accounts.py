# ledger/management/commands/seed_chart_of_accounts.py


from django.core.management.base import BaseCommand

from ledger.authz import ActorContext
from ledger.context import OperationContext
from ledger.directory import seed_chart


class Command(BaseCommand):
    help = "Create the configured chart of accounts (LEDGER_CHART_OF_ACCOUNTS)"

    def add_arguments(self, parser):
        parser.add_argument("--database", default="default", help="Database alias to seed")

    def handle(self, *args, **options):
        ctx = OperationContext.begin(ActorContext.system("seed_chart_of_accounts"), using=options["database"])
        with ctx.atomic():
            created, existing = seed_chart(ctx)

        self.stdout.write(self.style.SUCCESS(f"Done! Created {created}, already present {existing}."))
