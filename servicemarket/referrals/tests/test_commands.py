"""
Tests for the pay_commissions management command and the admin payout action.
"""

from decimal import Decimal
from io import StringIO
from unittest.mock import patch

import pytest
from django.contrib import admin
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import RequestFactory

from servicemarket.ledger.services import LedgerService
from servicemarket.referrals.admin import CommissionAdmin
from servicemarket.referrals.constants import CommissionStatus
from servicemarket.referrals.constants import PaymentMethod
from servicemarket.referrals.models import Commission
from servicemarket.referrals.tests.factories import CommissionFactory


@pytest.mark.django_db
class TestPayCommissionsCommand:
    def test_pays_pending_commissions(self):
        commission = CommissionFactory(commission_amount=Decimal("250.00"))
        out = StringIO()

        call_command("pay_commissions", stdout=out)

        assert "Paid 1 commission(s), 0 failed." in out.getvalue()
        commission.refresh_from_db()
        assert commission.status == CommissionStatus.PAID
        assert LedgerService().get_balance(commission.referrer) == Decimal("250.00")

    def test_dry_run_pays_nothing(self):
        commission = CommissionFactory()
        out = StringIO()

        call_command("pay_commissions", "--dry-run", stdout=out)

        assert "DRY RUN - would pay 1 commission(s)" in out.getvalue()
        assert str(commission.pk) in out.getvalue()
        commission.refresh_from_db()
        assert commission.status == CommissionStatus.PENDING

    def test_pays_single_commission_externally(self):
        commission = CommissionFactory()
        out = StringIO()

        call_command(
            "pay_commissions",
            f"--commission={commission.pk}",
            "--method=bank_transfer",
            "--reference=TRF-0042",
            stdout=out,
        )

        commission.refresh_from_db()
        assert commission.status == CommissionStatus.PAID
        assert commission.payment_method == PaymentMethod.BANK_TRANSFER
        assert commission.payment_reference == "TRF-0042"
        assert "TRF-0042" in out.getvalue()

    def test_paid_commission_raises_command_error(self):
        commission = CommissionFactory(status=CommissionStatus.PAID)

        with pytest.raises(CommandError, match="commission_not_pending"):
            call_command(
                "pay_commissions",
                f"--commission={commission.pk}",
                stdout=StringIO(),
            )

    def test_batch_rejects_external_method(self):
        with pytest.raises(CommandError, match="only support the wallet method"):
            call_command("pay_commissions", "--method=mobile_money", stdout=StringIO())


@pytest.mark.django_db
class TestCommissionAdminPayAction:
    def test_pays_selected_pending_commissions(self):
        pending = CommissionFactory()
        already_paid = CommissionFactory(status=CommissionStatus.PAID)
        model_admin = CommissionAdmin(Commission, admin.site)
        request = RequestFactory().post("/admin/referrals/commission/")

        with patch.object(CommissionAdmin, "message_user") as message_user:
            model_admin.pay_to_wallet(
                request,
                Commission.objects.filter(pk__in=[pending.pk, already_paid.pk]),
            )

        pending.refresh_from_db()
        assert pending.status == CommissionStatus.PAID
        message_user.assert_called_once()
        assert "Paid 1 commission(s)" in message_user.call_args.args[1]
