"""
Management command to pay pending referral commissions.

By default pays up to --limit pending commissions, oldest first, into the
referrers' wallets. A single commission can be paid with --commission,
optionally through an external method that needs a --reference.

Usage:
    python manage.py pay_commissions
    python manage.py pay_commissions --limit=20 --dry-run
    python manage.py pay_commissions --commission=<uuid>
    python manage.py pay_commissions --commission=<uuid> \\
        --method=bank_transfer --reference=TRF-0042
"""

from django.conf import settings
from django.core.management.base import BaseCommand
from django.core.management.base import CommandError

from servicemarket.core.exceptions import ServiceError
from servicemarket.referrals.commissions import CommissionEngine
from servicemarket.referrals.constants import CommissionStatus
from servicemarket.referrals.constants import PaymentMethod
from servicemarket.referrals.models import Commission


class Command(BaseCommand):
    help = "Pay pending referral commissions."

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=None,
            help=(
                "Maximum number of commissions to pay "
                "(default: REFERRAL_AUTO_PAYOUT_BATCH_SIZE)"
            ),
        )
        parser.add_argument(
            "--commission",
            type=str,
            help="Pay only this commission id",
        )
        parser.add_argument(
            "--method",
            choices=PaymentMethod.values,
            default=PaymentMethod.WALLET,
            help="Payment method (default: wallet)",
        )
        parser.add_argument(
            "--reference",
            type=str,
            default="",
            help="External payment reference (required for non-wallet methods)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be paid without paying",
        )

    def handle(self, *args, **options):
        engine = CommissionEngine()
        limit = options["limit"] or settings.REFERRAL_AUTO_PAYOUT_BATCH_SIZE

        if options["commission"]:
            self._pay_one(engine, options)
            return

        if options["method"] != PaymentMethod.WALLET:
            raise CommandError(
                "Batch payouts only support the wallet method; "
                "use --commission for external payouts.",
            )

        if options["dry_run"]:
            pending = Commission.objects.filter(
                status=CommissionStatus.PENDING,
            ).order_by("created")[:limit]
            count = 0
            for commission in pending:
                count += 1
                self.stdout.write(
                    f"  Would pay {commission.commission_amount} to "
                    f"{commission.referrer} (commission {commission.pk})",
                )
            self.stdout.write(
                self.style.WARNING(f"DRY RUN - would pay {count} commission(s)"),
            )
            return

        result = engine.pay_pending_commissions(limit=limit)
        for commission_id in result.failed_ids:
            self.stderr.write(self.style.ERROR(f"Failed to pay commission {commission_id}"))

        summary = f"Paid {result.paid} commission(s), {result.failed} failed."
        if result.failed:
            self.stdout.write(self.style.WARNING(summary))
        else:
            self.stdout.write(self.style.SUCCESS(summary))

    def _pay_one(self, engine: CommissionEngine, options: dict) -> None:
        commission_id = options["commission"]
        if options["dry_run"]:
            self.stdout.write(
                self.style.WARNING(f"DRY RUN - would pay commission {commission_id}"),
            )
            return

        try:
            commission = engine.pay_commission(
                commission_id,
                method=options["method"],
                reference=options["reference"],
            )
        except ServiceError as exc:
            raise CommandError(f"{exc.detail} ({exc.code})") from exc

        self.stdout.write(
            self.style.SUCCESS(
                f"Paid commission {commission.pk}: {commission.commission_amount} "
                f"via {commission.payment_method} ({commission.payment_reference})",
            ),
        )
