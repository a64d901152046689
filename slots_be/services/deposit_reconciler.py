"""
Deposit reconciliation against the Lightning provider.

Deposits are settled by client-driven polling: there is no webhook listener,
so a paid invoice is only credited when somebody asks for its status. Every
poll is safe to repeat; a payment is credited at most once.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from slots_be.error_codes import ErrorCodes
from slots_be.exceptions import NotFoundException, ProviderException, ValidationException
from slots_be.models import Deposit
from slots_be.utils.security_logger import SecurityLogger

logger = logging.getLogger(__name__)

MSAT_PER_SAT = 1000
# Without an explicit unit, a reported amount this many times larger than the
# requested one is taken to be in millisatoshis.
MSAT_HEURISTIC_FACTOR = 100


@dataclass
class DepositStatus:
    paid: bool
    balance: int
    credited_amount: Optional[int] = None
    newly_settled: bool = False


def normalize_paid_amount(paid_amount, amount_unit, requested_amount) -> int:
    """
    Converts the amount reported by the provider into sats.

    Args:
        paid_amount: Amount reported for the paid invoice, or None.
        amount_unit: 'sat', 'msat' or None when the provider does not say.
        requested_amount: Amount (sats) the invoice was created for.

    Raises:
        ProviderException: If the unit is unknown or the amount is below one sat.
    """
    if paid_amount is None or paid_amount <= 0:
        return requested_amount

    if amount_unit == 'msat':
        sats = paid_amount // MSAT_PER_SAT
    elif amount_unit == 'sat':
        sats = paid_amount
    elif amount_unit is None:
        if paid_amount >= requested_amount * MSAT_HEURISTIC_FACTOR:
            sats = paid_amount // MSAT_PER_SAT
        else:
            sats = paid_amount
    else:
        raise ProviderException(f"Unknown amount unit reported by payment provider: {amount_unit}")

    if sats <= 0:
        raise ProviderException("Payment provider reported a paid amount below one sat.",
                                details={'paid_amount': paid_amount, 'unit': amount_unit})
    return sats


class DepositReconciler:
    def __init__(self, lightning_client, ledger, max_deposit_sats=1_000_000):
        self.lightning_client = lightning_client
        self.ledger = ledger
        self.max_deposit_sats = max_deposit_sats

    @property
    def session(self):
        return self.ledger.session

    def _validate_amount(self, amount):
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationException("Deposit amount must be a positive integer.",
                                      details={'amount': 'Must be a positive integer.'},
                                      error_code=ErrorCodes.INVALID_AMOUNT)
        if amount > self.max_deposit_sats:
            raise ValidationException(f"Deposit amount exceeds the maximum of {self.max_deposit_sats} sats.",
                                      details={'amount': amount, 'max': self.max_deposit_sats},
                                      error_code=ErrorCodes.INVALID_AMOUNT)

    def request_deposit(self, user_id, amount) -> Deposit:
        """
        Mints an invoice for ``amount`` sats and stores it as a pending deposit.

        The amount is validated before the provider is contacted.
        """
        self._validate_amount(amount)
        user = self.ledger.get_user(user_id)
        memo = f"Deposit {user.username}"

        logger.info(f"Creating invoice for user {user_id}, amount: {amount} sats")
        invoice = self.lightning_client.create_invoice(amount, memo)
        if not invoice or not invoice.payment_request or not invoice.payment_hash:
            raise ProviderException("Payment provider did not return a payment request.")

        deposit = Deposit(
            user_id=user_id,
            amount=amount,
            payment_hash=invoice.payment_hash,
            payment_request=invoice.payment_request,
            memo=memo,
        )
        try:
            self.session.add(deposit)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise ProviderException("Payment provider returned a payment hash that is already in use.",
                                    details={'payment_id': invoice.payment_hash}) from e
        except SQLAlchemyError:
            self.session.rollback()
            raise

        SecurityLogger.log_financial_event(
            event_type='deposit_requested',
            user_id=user_id,
            amount=amount,
            transaction_id=invoice.payment_hash,
        )
        return deposit

    def _get_deposit(self, user_id, payment_id) -> Deposit:
        if not payment_id or not isinstance(payment_id, str):
            raise ValidationException("payment_id is required.", details={'payment_id': 'Missing.'})
        deposit = self.session.scalar(select(Deposit).where(Deposit.payment_hash == payment_id))
        if deposit is None or deposit.user_id != user_id:
            raise NotFoundException("Deposit not found.", error_code=ErrorCodes.DEPOSIT_NOT_FOUND)
        return deposit

    def _cached_status(self, deposit) -> DepositStatus:
        return DepositStatus(paid=deposit.paid, balance=self.ledger.current_balance(deposit.user_id),
                             credited_amount=deposit.credited_amount if deposit.paid else None)

    def check_and_settle(self, user_id, payment_id) -> DepositStatus:
        """
        Polls the provider for ``payment_id`` and credits the deposit on its first paid observation.

        Already-settled deposits are answered from the database without
        contacting the provider.
        """
        deposit = self._get_deposit(user_id, payment_id)
        if deposit.paid:
            return self._cached_status(deposit)

        status = self.lightning_client.get_invoice_status(payment_id)
        if not status.paid:
            return DepositStatus(paid=False, balance=self.ledger.current_balance(user_id))

        amount = normalize_paid_amount(status.paid_amount, status.amount_unit, deposit.amount)
        deposit_id = deposit.id
        session = self.session
        try:
            result = session.execute(
                update(Deposit)
                .where(Deposit.id == deposit_id, Deposit.paid.is_(False))
                .values(paid=True, credited_amount=amount, paid_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                # Another poll settled it between our read and this update.
                session.rollback()
                return self._cached_status(session.get(Deposit, deposit_id))

            new_balance, _ = self.ledger.credit_deposit(
                user_id, amount, payment_id,
                details={'deposit_id': deposit_id, 'requested_amount': deposit.amount},
                commit=False,
            )
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.info(f"Deposit {deposit_id} was credited concurrently; returning stored state")
            return self._cached_status(session.get(Deposit, deposit_id))
        except SQLAlchemyError:
            session.rollback()
            raise

        SecurityLogger.log_financial_event(
            event_type='deposit',
            user_id=user_id,
            amount=amount,
            balance_before=new_balance - amount,
            balance_after=new_balance,
            transaction_id=payment_id,
            details={'deposit_id': deposit_id},
        )
        return DepositStatus(paid=True, balance=new_balance, credited_amount=amount, newly_settled=True)

    def simulate_payment(self, user_id, amount) -> int:
        """Development-only credit without an invoice. Returns the new balance."""
        self._validate_amount(amount)
        payment_id = f"simulated-{secrets.token_hex(16)}"
        new_balance, _ = self.ledger.credit_deposit(user_id, amount, payment_id, transaction_type='simulated_deposit')
        logger.warning(f"Simulated payment of {amount} sats credited to user {user_id}")
        return new_balance
