from django.core.management.base import BaseCommand

from finance.payment.services import get_payment_service


class Command(BaseCommand):
    help = "Reconcile PENDING M-Pesa STK payments by querying Daraja for their status"

    def add_arguments(self, parser):
        parser.add_argument("--max", type=int, default=100, help="Max payments to process")
        parser.add_argument("--minutes", type=int, default=2,
                            help="Only payments pending for at least N minutes")

    def handle(self, *args, **opts):
        counts = get_payment_service().sweep_pending_mpesa_payments(
            older_than_minutes=opts["minutes"], limit=opts["max"]
        )
        if counts["errors"]:
            self.stdout.write(self.style.WARNING(f"{counts['errors']} payments could not be queried"))
        self.stdout.write(self.style.SUCCESS(
            f"Checked {counts['checked']}: {counts['succeeded']} settled, "
            f"{counts['failed']} failed, {counts['pending']} still pending."
        ))
