import threading
import unittest

import pytest
from sqlalchemy import func, select

from slots_be.exceptions import NotFoundException, ProviderException, ValidationException
from slots_be.models import db, Deposit, Transaction
from slots_be.services.deposit_reconciler import normalize_paid_amount
from slots_be.tests.test_api import BaseTestCase


# --- normalize_paid_amount ---

def test_sat_amount_is_taken_as_is():
    assert normalize_paid_amount(1500, 'sat', 1000) == 1500

def test_msat_amount_is_floored_to_sats():
    assert normalize_paid_amount(150_000, 'msat', 150) == 150
    assert normalize_paid_amount(150_999, 'msat', 150) == 150

def test_unknown_unit_uses_magnitude_heuristic():
    # 100x the requested amount or more reads as msat
    assert normalize_paid_amount(100_000, None, 100) == 100
    assert normalize_paid_amount(120, None, 100) == 120

def test_missing_or_zero_amount_credits_requested_amount():
    assert normalize_paid_amount(None, 'sat', 1000) == 1000
    assert normalize_paid_amount(0, 'msat', 1000) == 1000

def test_sub_sat_payment_is_a_provider_error():
    with pytest.raises(ProviderException):
        normalize_paid_amount(500, 'msat', 1)

def test_unsupported_unit_is_a_provider_error():
    with pytest.raises(ProviderException):
        normalize_paid_amount(1000, 'btc', 1000)


class DepositReconcilerTests(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.user = self._create_user('alice')

    def test_invalid_amounts_never_reach_the_provider(self):
        for amount in (0, -5, True, 2.5, '100', 1_000_001):
            with self.assertRaises(ValidationException):
                self.reconciler.request_deposit(self.user.id, amount)
        self.assertEqual(self.lightning.create_calls, 0)
        self.assertEqual(db.session.scalar(select(func.count(Deposit.id))), 0)

    def test_request_deposit_stores_pending_invoice(self):
        deposit = self.reconciler.request_deposit(self.user.id, 1000)
        self.assertFalse(deposit.paid)
        self.assertEqual(deposit.memo, 'Deposit alice')
        self.assertIn(deposit.payment_hash, self.lightning.invoices)
        self.assertEqual(self.lightning.invoices[deposit.payment_hash]['amount'], 1000)

    def test_provider_failure_creates_no_deposit(self):
        self.lightning.error = ProviderException("boom")
        with self.assertRaises(ProviderException):
            self.reconciler.request_deposit(self.user.id, 1000)
        self.assertEqual(db.session.scalar(select(func.count(Deposit.id))), 0)

    def test_unpaid_invoice_credits_nothing(self):
        deposit = self.reconciler.request_deposit(self.user.id, 1000)
        status = self.reconciler.check_and_settle(self.user.id, deposit.payment_hash)
        self.assertFalse(status.paid)
        self.assertEqual(status.balance, 0)

    def test_paid_invoice_credited_exactly_once(self):
        deposit = self.reconciler.request_deposit(self.user.id, 1000)
        payment_id = deposit.payment_hash
        self.lightning.mark_paid(payment_id)

        first = self.reconciler.check_and_settle(self.user.id, payment_id)
        self.assertTrue(first.paid)
        self.assertTrue(first.newly_settled)
        self.assertEqual(first.balance, 1000)

        calls = self.lightning.status_calls
        for _ in range(3):
            again = self.reconciler.check_and_settle(self.user.id, payment_id)
            self.assertTrue(again.paid)
            self.assertFalse(again.newly_settled)
            self.assertEqual(again.balance, 1000)
            self.assertEqual(again.credited_amount, 1000)
        self.assertEqual(self.lightning.status_calls, calls)
        self.assertEqual(self._balance(self.user.id), 1000)
        self.assertEqual(db.session.scalar(select(func.count(Transaction.id))), 1)

    def test_concurrent_polls_credit_a_payment_once(self):
        deposit = self.reconciler.request_deposit(self.user.id, 1000)
        payment_id = deposit.payment_hash
        user_id = self.user.id
        self.lightning.mark_paid(payment_id)
        results = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    status = self.reconciler.check_and_settle(user_id, payment_id)
                finally:
                    db.session.remove()
            with lock:
                results.append((status.paid, status.newly_settled, status.balance))

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(results), 10)
        self.assertTrue(all(paid for paid, _, _ in results))
        self.assertEqual(sum(1 for _, newly_settled, _ in results if newly_settled), 1)
        db.session.expire_all()
        self.assertEqual(self._balance(user_id), 1000)
        self.assertEqual(db.session.scalar(select(func.count(Transaction.id))), 1)
        self.assertTrue(db.session.get(Deposit, deposit.id).paid)

    def test_msat_report_is_normalised(self):
        deposit = self.reconciler.request_deposit(self.user.id, 150)
        self.lightning.mark_paid(deposit.payment_hash, paid_amount=150_000, amount_unit='msat')
        status = self.reconciler.check_and_settle(self.user.id, deposit.payment_hash)
        self.assertEqual(status.credited_amount, 150)
        self.assertEqual(self._balance(self.user.id), 150)

    def test_sub_sat_payment_leaves_deposit_unpaid(self):
        deposit = self.reconciler.request_deposit(self.user.id, 1)
        self.lightning.mark_paid(deposit.payment_hash, paid_amount=500, amount_unit='msat')
        with self.assertRaises(ProviderException):
            self.reconciler.check_and_settle(self.user.id, deposit.payment_hash)
        self.assertFalse(db.session.get(Deposit, deposit.id).paid)
        self.assertEqual(self._balance(self.user.id), 0)

    def test_deposit_of_another_user_is_not_found(self):
        deposit = self.reconciler.request_deposit(self.user.id, 1000)
        self.lightning.mark_paid(deposit.payment_hash)
        other = self._create_user('bob')
        with self.assertRaises(NotFoundException):
            self.reconciler.check_and_settle(other.id, deposit.payment_hash)
        self.assertEqual(self.lightning.status_calls, 0)

    def test_simulate_payment(self):
        balance = self.reconciler.simulate_payment(self.user.id, 300)
        self.assertEqual(balance, 300)
        transaction = db.session.scalar(select(Transaction))
        self.assertEqual(transaction.transaction_type, 'simulated_deposit')
        with self.assertRaises(ValidationException):
            self.reconciler.simulate_payment(self.user.id, 0)


if __name__ == '__main__':
    unittest.main()
