"""
Balance ledger: the only code allowed to change a user's balance.

Every balance change is a single conditional UPDATE on the user row executed in
the same database transaction as the records that justify it (spin record and
ledger transactions, or the deposit credit). The guard in the WHERE clause makes
the update a compare-and-set, so concurrent spins for the same user can never
debit against a stale balance and the balance never goes negative.
"""
import logging
import secrets
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from slots_be.error_codes import ErrorCodes
from slots_be.exceptions import InsufficientFundsException, NotFoundException, ValidationException
from slots_be.models import SlotSpin, Transaction, User
from slots_be.utils.security_logger import SecurityLogger
from slots_be.utils.spin_handler import PayoutResult, SpinOutcome, evaluate_outcome, generate_outcome

logger = logging.getLogger(__name__)

MAX_BET_SATS = 2**31 - 1


@dataclass
class SpinSettlement:
    new_balance: int
    balance_before: int
    cost: int
    prize: int
    outcome: SpinOutcome
    payout: PayoutResult
    spin: SlotSpin

    def to_dict(self):
        """Client-facing result of a resolved spin."""
        return {
            'outcome': self.outcome.to_dict(),
            'winning_lines': self.payout.winning_lines,
            'credits_won': self.payout.total_credits_won,
            'prize': self.prize,
            'cost': self.cost,
            'balance': self.new_balance,
            'spin': {
                'id': self.spin.id,
                'nonce': self.spin.nonce,
                'spin_time': self.spin.spin_time.isoformat() if self.spin.spin_time else None,
            },
        }


def deposit_reference(payment_id: str) -> str:
    return f"deposit:{payment_id}"


def _require_positive_int(value, field_name, error_code=ErrorCodes.VALIDATION_ERROR):
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationException(f"{field_name} must be an integer.", details={field_name: 'Not an integer.'},
                                  error_code=error_code)
    if value <= 0:
        raise ValidationException(f"{field_name} must be positive.", details={field_name: 'Must be positive.'},
                                  error_code=error_code)
    return value


class Ledger:
    def __init__(self, db, outcome_generator=generate_outcome, payout_evaluator=evaluate_outcome):
        self.db = db
        self.outcome_generator = outcome_generator
        self.payout_evaluator = payout_evaluator

    @property
    def session(self):
        return self.db.session

    def get_user(self, user_id) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundException("User not found.", error_code=ErrorCodes.USER_NOT_FOUND)
        return user

    def current_balance(self, user_id) -> int:
        balance = self.session.scalar(select(User.balance).where(User.id == user_id))
        if balance is None:
            raise NotFoundException("User not found.", error_code=ErrorCodes.USER_NOT_FOUND)
        return balance

    def settle_spin(self, user_id, bet_credits, sats_per_credit) -> SpinSettlement:
        """
        Resolves one spin and applies it to the user's balance.

        Args:
            user_id: Owner of the balance.
            bet_credits: Number of credits wagered (positive integer).
            sats_per_credit: Price of one credit in sats (positive integer).

        Returns:
            SpinSettlement with ``new_balance == balance_before - cost + prize``.

        Raises:
            ValidationException: Non-positive or non-integer bet or price, or a bet above MAX_BET_SATS.
            NotFoundException: Unknown user.
            InsufficientFundsException: Balance lower than the cost of the spin.
        """
        _require_positive_int(bet_credits, 'bet_credits', ErrorCodes.INVALID_BET)
        _require_positive_int(sats_per_credit, 'sats_per_credit', ErrorCodes.INVALID_BET)
        cost = bet_credits * sats_per_credit
        if cost > MAX_BET_SATS:
            raise ValidationException("Bet amount exceeds maximum allowed value.",
                                      details={'cost': cost, 'max': MAX_BET_SATS}, error_code=ErrorCodes.INVALID_BET)

        session = self.session
        user = self.get_user(user_id)
        if user.balance < cost:
            raise InsufficientFundsException("Insufficient balance to place bet.",
                                             details={'balance': user.balance, 'cost': cost})

        outcome = self.outcome_generator()
        payout = self.payout_evaluator(outcome)
        prize = payout.total_credits_won * sats_per_credit
        delta = prize - cost

        try:
            result = session.execute(
                update(User)
                .where(User.id == user_id, User.balance >= cost)
                .values(balance=User.balance + delta)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                # A concurrent debit got there first and the guard no longer holds.
                session.rollback()
                raise InsufficientFundsException("Insufficient balance to place bet.", details={'cost': cost})

            new_balance = session.scalar(select(User.balance).where(User.id == user_id))
            balance_before = new_balance - delta

            spin = SlotSpin(
                user_id=user_id,
                nonce=secrets.token_hex(16),
                spin_result=outcome.to_dict(),
                winning_lines=payout.winning_lines,
                bet_credits=bet_credits,
                sats_per_credit=sats_per_credit,
                bet_amount=cost,
                credits_won=payout.total_credits_won,
                win_amount=prize,
                balance_after=new_balance,
            )
            session.add(spin)
            session.flush()

            session.add(Transaction(
                user_id=user_id,
                amount=-cost,
                transaction_type='spin_bet',
                details={'bet_credits': bet_credits, 'sats_per_credit': sats_per_credit, 'nonce': spin.nonce},
                slot_spin_id=spin.id,
            ))
            if prize > 0:
                session.add(Transaction(
                    user_id=user_id,
                    amount=prize,
                    transaction_type='spin_win',
                    details={'credits_won': payout.total_credits_won, 'lines': [l['line_id'] for l in payout.winning_lines]},
                    slot_spin_id=spin.id,
                ))
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.error(f"Spin settlement failed for user {user_id}; rolled back", exc_info=True)
            raise

        session.refresh(user)
        SecurityLogger.log_financial_event(
            event_type='slot_spin',
            user_id=user_id,
            amount=delta,
            balance_before=balance_before,
            balance_after=new_balance,
            transaction_id=spin.nonce,
            details={'cost': cost, 'prize': prize, 'credits_won': payout.total_credits_won},
        )
        return SpinSettlement(new_balance=new_balance, balance_before=balance_before, cost=cost, prize=prize,
                              outcome=outcome, payout=payout, spin=spin)

    def credit_deposit(self, user_id, amount, payment_id, transaction_type='deposit', details=None, commit=True):
        """
        Credits ``amount`` sats for ``payment_id`` at most once.

        The ledger transaction carries a unique reference derived from the
        payment id, so a duplicate credit is refused by the database even
        across processes.

        Returns:
            tuple: (balance, credited). ``credited`` is False when this payment
            had already been credited; the balance is then returned unchanged.

        Raises:
            IntegrityError: Only when ``commit`` is False and a concurrent writer
                credited the same payment; the caller owns the transaction.
        """
        _require_positive_int(amount, 'amount', ErrorCodes.INVALID_AMOUNT)
        if not payment_id:
            raise ValidationException("payment_id is required.", details={'payment_id': 'Missing.'})

        session = self.session
        reference = deposit_reference(payment_id)
        self.get_user(user_id)

        if session.scalar(select(Transaction.id).where(Transaction.reference == reference)) is not None:
            logger.info(f"Payment {payment_id} already credited; skipping duplicate credit for user {user_id}")
            return self.current_balance(user_id), False

        try:
            session.add(Transaction(
                user_id=user_id,
                amount=amount,
                transaction_type=transaction_type,
                reference=reference,
                details={**(details or {}), 'payment_id': payment_id},
            ))
            session.flush()
            session.execute(
                update(User)
                .where(User.id == user_id)
                .values(balance=User.balance + amount)
                .execution_options(synchronize_session=False)
            )
            new_balance = session.scalar(select(User.balance).where(User.id == user_id))
            if commit:
                session.commit()
        except IntegrityError:
            if not commit:
                raise
            session.rollback()
            logger.info(f"Concurrent duplicate credit for payment {payment_id} refused")
            return self.current_balance(user_id), False
        except SQLAlchemyError:
            session.rollback()
            raise

        if commit:
            SecurityLogger.log_financial_event(
                event_type=transaction_type,
                user_id=user_id,
                amount=amount,
                balance_before=new_balance - amount,
                balance_after=new_balance,
                transaction_id=payment_id,
            )
        return new_balance, True
