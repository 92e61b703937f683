import asyncio
import itertools
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from .config import PAYMENT_DELAY_SEC, PAYMENT_FAILURE_RATE
from .errors import InvalidTopUpAmount, PaymentFailed, UnknownUser
from .models import Transaction, TransactionType

MIN_TOP_UP = 50
MAX_TOP_UP = 10000


class PaymentMethod:
    UPI = "upi"
    CARD = "card"
    NETBANKING = "netbanking"

    ALL = (UPI, CARD, NETBANKING)


@dataclass(frozen=True)
class TopUpOption:
    amount: float
    bonus: float
    popular: bool = False


TOP_UP_OPTIONS = (
    TopUpOption(100, 0),
    TopUpOption(500, 25, popular=True),
    TopUpOption(1000, 75),
    TopUpOption(2000, 200),
    TopUpOption(5000, 750),
)


def validate_top_up_amount(amount: float) -> None:
    if amount < MIN_TOP_UP:
        raise InvalidTopUpAmount(f"Minimum top-up amount is {MIN_TOP_UP}")
    if amount > MAX_TOP_UP:
        raise InvalidTopUpAmount(f"Maximum top-up amount is {MAX_TOP_UP}")


def transaction_fee(amount: float, payment_method: str) -> float:
    if payment_method == PaymentMethod.CARD:
        return max(amount * 0.02, 2)
    if payment_method == PaymentMethod.NETBANKING:
        return max(amount * 0.015, 5)
    return 0.0


def bonus_for(amount: float) -> float:
    for option in TOP_UP_OPTIONS:
        if option.amount == amount:
            return option.bonus
    return 0.0


class Ledger:
    """Per-user balances backed by an append-only transaction list.

    The sum of a user's transaction amounts always equals the change of
    their balance since the account was opened.
    """

    def __init__(self):
        self._initial: Dict[str, float] = {}
        self._balances: Dict[str, float] = {}
        self._transactions: List[Transaction] = []
        self._ids = itertools.count(1)

    def open_account(self, user_id: str, initial_balance: float = 0.0) -> None:
        self._initial[user_id] = initial_balance
        self._balances[user_id] = initial_balance

    def balance(self, user_id: str) -> float:
        if user_id not in self._balances:
            raise UnknownUser(user_id)
        return self._balances[user_id]

    def initial_balance(self, user_id: str) -> float:
        return self._initial[user_id]

    def record(
        self,
        user_id: str,
        type: str,
        amount: float,
        description: str,
        now: datetime,
        session_id: Optional[str] = None,
        payment_method: Optional[str] = None,
        fee: float = 0.0,
        reference: Optional[str] = None,
    ) -> Transaction:
        if user_id not in self._balances:
            raise UnknownUser(user_id)
        tx = Transaction(
            id=f"txn-{next(self._ids):06d}",
            user_id=user_id,
            type=type,
            amount=amount,
            description=description,
            timestamp=now,
            session_id=session_id,
            payment_method=payment_method,
            transaction_fee=fee,
            reference=reference,
        )
        self._transactions.append(tx)
        self._balances[user_id] += amount
        return tx

    def transactions(self, user_id: Optional[str] = None) -> List[Transaction]:
        """Newest first, like the dashboard lists them."""
        txs = self._transactions if user_id is None else [t for t in self._transactions if t.user_id == user_id]
        return list(reversed(txs))

    def transaction_for_session(self, session_id: str) -> Optional[Transaction]:
        for tx in self._transactions:
            if tx.session_id == session_id and tx.type == TransactionType.CHARGE:
                return tx
        return None


class PaymentGateway:
    """Simulated payment processor.

    The outcome of each payment is decided once after a fixed delay and is
    never retried here.
    """

    def __init__(
        self,
        failure_rate: float = PAYMENT_FAILURE_RATE,
        delay_sec: float = PAYMENT_DELAY_SEC,
        rng: Optional[random.Random] = None,
    ):
        self.failure_rate = failure_rate
        self.delay_sec = delay_sec
        self.rng = rng or random.Random()

    async def process(self, amount: float, payment_method: str) -> str:
        await asyncio.sleep(self.delay_sec)
        if self.rng.random() < self.failure_rate:
            logging.warning(f"Payment of {amount:.2f} via {payment_method} failed")
            raise PaymentFailed("Payment failed. Please try again.")
        reference = f"REF{self.rng.randrange(16**8):08X}"
        logging.info(f"Payment of {amount:.2f} via {payment_method} accepted, ref={reference}")
        return reference


class WalletService:
    def __init__(self, ledger: Ledger, gateway: PaymentGateway, clock: Callable[[], datetime]):
        self.ledger = ledger
        self.gateway = gateway
        self.clock = clock

    async def top_up(self, user_id: str, amount: float, payment_method: str = PaymentMethod.UPI) -> List[Transaction]:
        """Charge the payment method and credit the wallet.

        The wallet receives ``amount`` less the method's fee, plus a
        separate bonus entry for the advertised top-up options. Nothing is
        recorded when the payment fails.
        """
        if payment_method not in PaymentMethod.ALL:
            raise ValueError(f"Unsupported payment method {payment_method!r}")
        validate_top_up_amount(amount)
        self.ledger.balance(user_id)

        reference = await self.gateway.process(amount, payment_method)
        now = self.clock()
        fee = transaction_fee(amount, payment_method)
        entries = [
            self.ledger.record(
                user_id,
                TransactionType.WALLET_TOPUP,
                amount - fee,
                f"Wallet Top-up via {payment_method.upper()}",
                now,
                payment_method=payment_method,
                fee=fee,
                reference=reference,
            )
        ]
        bonus = bonus_for(amount)
        if bonus:
            entries.append(
                self.ledger.record(
                    user_id, TransactionType.BONUS, bonus, f"Top-up bonus on {amount:.0f}", now, reference=reference
                )
            )
        logging.info(f"Wallet top-up for {user_id}: +{amount - fee + bonus:.2f}, balance={self.ledger.balance(user_id):.2f}")
        return entries

    def refund(self, user_id: str, amount: float, reason: str, session_id: Optional[str] = None) -> Transaction:
        if amount <= 0:
            raise ValueError("refund amount must be positive")
        tx = self.ledger.record(user_id, TransactionType.REFUND, amount, reason, self.clock(), session_id=session_id)
        logging.info(f"Refund for {user_id}: +{amount:.2f} ({reason})")
        return tx

    def categorize(self, user_id: str) -> dict:
        txs = self.ledger.transactions(user_id)
        charging = [t for t in txs if t.type == TransactionType.CHARGE]
        topups = [t for t in txs if t.type == TransactionType.WALLET_TOPUP]
        refunds = [t for t in txs if t.type == TransactionType.REFUND]
        bonuses = [t for t in txs if t.type == TransactionType.BONUS]
        return {
            "charging": charging,
            "topups": topups,
            "refunds": refunds,
            "bonuses": bonuses,
            "total_spent": abs(sum(t.amount for t in charging)),
            "total_topups": sum(t.amount for t in topups),
            "total_refunds": sum(t.amount for t in refunds),
            "total_bonuses": sum(t.amount for t in bonuses),
        }

    def spending_insights(self, user_id: str, now: Optional[datetime] = None) -> dict:
        now = now or self.clock()
        since = now - timedelta(days=30)
        charges = [
            abs(t.amount)
            for t in self.ledger.transactions(user_id)
            if t.type == TransactionType.CHARGE and t.timestamp >= since
        ]
        spent = sum(charges)
        return {
            "last_30_days_spent": spent,
            "sessions_count": len(charges),
            "avg_session_cost": spent / len(charges) if charges else 0.0,
            "most_expensive_session": max(charges, default=0.0),
        }
