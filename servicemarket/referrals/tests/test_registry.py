"""
Tests for ReferralRegistry: code issuance and referral recording.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import IntegrityError
from django.db import transaction
from django.test import override_settings

from servicemarket.accounts.models import Account
from servicemarket.accounts.tests.factories import AccountFactory
from servicemarket.core.exceptions import DuplicateReferralError
from servicemarket.core.exceptions import ErrorKind
from servicemarket.core.exceptions import NotFoundError
from servicemarket.core.exceptions import SelfReferralError
from servicemarket.referrals.constants import CODE_ALPHABET
from servicemarket.referrals.constants import CommissionStatus
from servicemarket.referrals.constants import ReferralStatus
from servicemarket.referrals.models import Referral
from servicemarket.referrals.models import ReferralCode
from servicemarket.referrals.registry import ReferralRegistry
from servicemarket.referrals.registry import code_prefix
from servicemarket.referrals.tests.factories import CommissionFactory
from servicemarket.referrals.tests.factories import ReferralCodeFactory
from servicemarket.referrals.tests.factories import ReferralFactory


class TestCodePrefix:
    @pytest.mark.parametrize(
        ("display_name", "expected"),
        [
            ("Acme Plumbing", "ACME"),
            ("j&k", "JK"),
            ("  9 to 5 Cleaners", "9TO5"),
            ("!!!", ""),
            ("", ""),
        ],
    )
    def test_takes_first_four_alphanumerics(self, display_name, expected):
        assert code_prefix(display_name) == expected


@pytest.mark.django_db
class TestIssueCode:
    def test_generates_prefix_plus_random_suffix(self):
        account = AccountFactory(display_name="Acme Plumbing")

        referral_code = ReferralRegistry().issue_code(account)

        assert referral_code.code.startswith("ACME")
        assert len(referral_code.code) == 8
        assert all(char in CODE_ALPHABET for char in referral_code.code[4:])

    def test_is_idempotent(self):
        account = AccountFactory()
        registry = ReferralRegistry()

        first = registry.issue_code(account)
        second = registry.issue_code(account)

        assert first.pk == second.pk
        assert ReferralCode.objects.filter(account=account).count() == 1

    def test_regenerates_on_collision(self):
        ReferralCodeFactory(code="ACMEAAAA")
        account = AccountFactory(display_name="Acme")

        with patch(
            "servicemarket.referrals.registry.random_suffix",
            side_effect=["AAAA", "BBBB"],
        ):
            referral_code = ReferralRegistry().issue_code(account)

        assert referral_code.code == "ACMEBBBB"

    @override_settings(REFERRAL_CODE_MAX_ATTEMPTS=3)
    def test_falls_back_after_max_attempts(self):
        ReferralCodeFactory(code="ACMEAAAA")
        account = AccountFactory(display_name="Acme")

        with patch(
            "servicemarket.referrals.registry.random_suffix",
            return_value="AAAA",
        ) as suffix:
            referral_code = ReferralRegistry().issue_code(account)

        assert suffix.call_count == 3
        assert referral_code.code == f"REF{account.pk.hex[:8].upper()}"

    def test_codes_are_unique_across_accounts(self):
        registry = ReferralRegistry()
        codes = {
            registry.issue_code(AccountFactory(display_name="Same Name")).code
            for _ in range(20)
        }
        assert len(codes) == 20


@pytest.mark.django_db
class TestProcessReferral:
    @pytest.fixture
    def referrer_code(self):
        return ReferralCodeFactory(code="ACME7K2Q")

    def test_records_pending_referral(self, referrer_code):
        referee = AccountFactory()

        referral = ReferralRegistry().process_referral(referee, "ACME7K2Q")

        assert referral.status == ReferralStatus.PENDING
        assert referral.referrer == referrer_code.account
        assert referral.referee == referee
        assert referral.code == "ACME7K2Q"
        assert referral.commission_rate == Decimal("10.00")
        referee.refresh_from_db()
        assert referee.referred_by == referrer_code.account

    def test_code_lookup_is_case_insensitive(self, referrer_code):
        referral = ReferralRegistry().process_referral(AccountFactory(), " acme7k2q ")
        assert referral.referrer == referrer_code.account

    @override_settings(REFERRAL_COMMISSION_RATE=Decimal("12.50"))
    def test_captures_current_commission_rate(self, referrer_code):
        referral = ReferralRegistry().process_referral(AccountFactory(), "ACME7K2Q")
        assert referral.commission_rate == Decimal("12.50")

    def test_unknown_code_is_not_found(self):
        with pytest.raises(NotFoundError) as exc_info:
            ReferralRegistry().process_referral(AccountFactory(), "NOPE0000")
        assert exc_info.value.code == "invalid_referral_code"
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    def test_self_referral_is_rejected(self, referrer_code):
        with pytest.raises(SelfReferralError) as exc_info:
            ReferralRegistry().process_referral(referrer_code.account, "ACME7K2Q")
        assert exc_info.value.kind == ErrorKind.VALIDATION
        assert not Referral.objects.exists()

    def test_same_pair_twice_is_duplicate(self, referrer_code):
        referee = AccountFactory()
        registry = ReferralRegistry()
        registry.process_referral(referee, "ACME7K2Q")

        with pytest.raises(DuplicateReferralError):
            registry.process_referral(referee, "ACME7K2Q")
        assert Referral.objects.count() == 1

    def test_referee_cannot_be_referred_by_second_account(self, referrer_code):
        referee = AccountFactory()
        registry = ReferralRegistry()
        registry.process_referral(referee, "ACME7K2Q")
        ReferralCodeFactory(code="OTHER123")

        with pytest.raises(DuplicateReferralError):
            registry.process_referral(referee, "OTHER123")

        referee.refresh_from_db()
        assert referee.referred_by == referrer_code.account

    def test_stale_referee_instance_cannot_be_referred_twice(self, referrer_code):
        referee = AccountFactory()
        first = Account.objects.get(pk=referee.pk)
        second = Account.objects.get(pk=referee.pk)
        ReferralCodeFactory(code="OTHER123")
        registry = ReferralRegistry()
        registry.process_referral(first, "ACME7K2Q")

        with pytest.raises(DuplicateReferralError):
            registry.process_referral(second, "OTHER123")

        assert Referral.objects.filter(referee=referee).count() == 1
        referee.refresh_from_db()
        assert referee.referred_by == referrer_code.account

    def test_database_allows_one_referral_per_referee(self):
        referral = ReferralFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            Referral.objects.create(
                referrer=AccountFactory(),
                referee=referral.referee,
                code="OTHER123",
            )


@pytest.mark.django_db
class TestReferralQueries:
    def test_get_code_details(self):
        referral_code = ReferralCodeFactory(
            code="ACME7K2Q",
            account__display_name="Acme",
        )

        details = ReferralRegistry().get_code_details("acme7k2q")

        assert details.account_id == str(referral_code.account.pk)
        assert details.display_name == "Acme"
        assert details.code == "ACME7K2Q"
        assert details.total_referrals == 0

    def test_get_code_details_unknown_code(self):
        with pytest.raises(NotFoundError):
            ReferralRegistry().get_code_details("MISSING1")

    def test_referral_stats(self):
        referrer = AccountFactory()
        ReferralFactory(referrer=referrer)
        CommissionFactory(
            referral__referrer=referrer,
            commission_amount=Decimal("1000.00"),
        )
        CommissionFactory(
            referral__referrer=referrer,
            commission_amount=Decimal("500.00"),
            status=CommissionStatus.PAID,
        )

        stats = ReferralRegistry().referral_stats(referrer)

        assert stats.total_referrals == 3
        assert stats.completed_referrals == 2
        assert stats.pending_referrals == 1
        assert stats.total_commissions == Decimal("1500.00")
        assert stats.pending_commissions == Decimal("1000.00")
        assert stats.paid_commissions == Decimal("500.00")

    def test_referral_stats_without_commissions(self):
        stats = ReferralRegistry().referral_stats(AccountFactory())
        assert stats.total_referrals == 0
        assert stats.total_commissions == Decimal("0.00")

    def test_top_referrers_orders_by_referral_count(self):
        busy = AccountFactory(total_referrals=5)
        quiet = AccountFactory(total_referrals=1)
        AccountFactory(total_referrals=0)

        top = list(ReferralRegistry().top_referrers(limit=10))

        assert top == [busy, quiet]
