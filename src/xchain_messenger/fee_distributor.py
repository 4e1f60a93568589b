"""
Relayer fee pool for one spoke, held on the hub.

Message fees collected on a spoke travel with its commitments and are
deposited here. Relayers are paid out of the pool per bundle, and anything
above the target pool size is skimmed to the treasury and public goods.
"""

import logging
from collections import defaultdict
from typing import TYPE_CHECKING

from .config import BPS_DENOMINATOR, FeeDistributorConfig
from .errors import NotAuthorized, TransferFailed
from .events import ExcessSkimmed, FeesDeposited, RelayFeeDeferred, RelayFeePaid

if TYPE_CHECKING:
    from .chain import Chain

logger = logging.getLogger(__name__)


class FeeDistributor:
    """
    Pays relayers from collected message fees.

    Payouts never exceed `absolute_max_fee`, `bundle_fees * max_fee_bps /
    10_000` or what the pool holds, and never the bundle's own fees. A
    relayer that cannot receive value is not allowed to block anything: its
    payout is parked as owed and can be retried later.

    Attributes:
        owner: The only account allowed to request payouts (the hub Transporter)
        total_deposited: All value ever deposited
        total_paid: All value paid out to relayers
        total_skimmed: All value sent to treasury and public goods
        owed: Payouts that failed to transfer, by relayer
    """

    address: str
    chain: "Chain"

    def __init__(self, owner: str, config: FeeDistributorConfig) -> None:
        self.owner = owner
        self.config = config
        self.total_deposited = 0
        self.total_paid = 0
        self.total_skimmed = 0
        self.owed: defaultdict[str, int] = defaultdict(int)

    @property
    def balance(self) -> int:
        return self.chain.balance_of(self.address)

    @property
    def total_owed(self) -> int:
        return sum(self.owed.values())

    @property
    def available(self) -> int:
        """Pool balance not already promised to a relayer."""
        return max(0, self.balance - self.total_owed)

    def deposit(self, caller: str, amount: int) -> None:
        """Move `amount` from `caller` into the pool."""
        self.chain.transfer(caller, self.address, amount)
        self.total_deposited += amount
        self.chain.emit(self.address, FeesDeposited(depositor=caller, amount=amount))
        logger.debug(f"Deposited {amount} wei into fee pool {self.address}")

    def max_payout(self, bundle_fees: int) -> int:
        relative_cap = bundle_fees * self.config.max_fee_bps // BPS_DENOMINATOR
        return min(self.config.absolute_max_fee, relative_cap, bundle_fees, self.available)

    def distribute(self, caller: str, bundle_fees: int, relayer: str) -> int:
        """
        Pay a relayer for a bundle.

        Args:
            caller: Must be the owner
            bundle_fees: Fees collected for the relayed bundle
            relayer: Recipient of the payout

        Returns:
            The payout amount, whether transferred or parked as owed
        """
        if caller != self.owner:
            raise NotAuthorized(caller, "distribute relayer fees")

        payout = self.max_payout(bundle_fees)
        if payout > 0:
            try:
                self.chain.transfer(self.address, relayer, payout)
            except TransferFailed as e:
                self.owed[relayer] += payout
                self.chain.emit(self.address, RelayFeeDeferred(relayer=relayer, amount=payout))
                logger.warning(f"Relayer payout of {payout} wei to {relayer} deferred: {e}")
            else:
                self.total_paid += payout
                self.chain.emit(self.address, RelayFeePaid(relayer=relayer, amount=payout))
                logger.info(f"Paid relayer {relayer} {payout} wei")

        self.skim_excess(caller)
        return payout

    def retry_payment(self, caller: str, relayer: str) -> int:
        """
        Retry a previously deferred payout. Anyone may call this.

        Returns:
            Amount transferred (0 if nothing was owed)

        Raises:
            TransferFailed: If the relayer still rejects the value
        """
        amount = self.owed.get(relayer, 0)
        if amount == 0:
            return 0

        self.chain.transfer(self.address, relayer, amount)
        del self.owed[relayer]
        self.total_paid += amount
        self.chain.emit(self.address, RelayFeePaid(relayer=relayer, amount=amount))
        logger.info(f"Deferred payout of {amount} wei to {relayer} settled by {caller}")
        return amount

    def skim_excess(self, caller: str) -> tuple[int, int]:
        """
        Send pool value above the target size to treasury and public goods.

        Public goods receive at least `min_public_goods_bps` of the excess,
        rounded up; the treasury receives the rest.

        Returns:
            Tuple of (treasury amount, public goods amount)
        """
        excess = self.available - self.config.target_pool_size
        if excess <= 0:
            return (0, 0)

        public_goods_amount = -(-excess * self.config.min_public_goods_bps // BPS_DENOMINATOR)
        treasury_amount = excess - public_goods_amount

        self.chain.transfer(self.address, self.config.public_goods, public_goods_amount)
        self.chain.transfer(self.address, self.config.treasury, treasury_amount)
        self.total_skimmed += excess
        self.chain.emit(
            self.address,
            ExcessSkimmed(treasury_amount=treasury_amount, public_goods_amount=public_goods_amount),
        )
        logger.info(
            f"Skimmed {excess} wei from fee pool: {treasury_amount} to treasury, "
            f"{public_goods_amount} to public goods (requested by {caller})"
        )
        return (treasury_amount, public_goods_amount)

    def get_accounting(self) -> dict[str, int]:
        """
        Snapshot of the pool's books.

        `deposited == paid + skimmed + balance` holds at all times.
        """
        return {
            'deposited': self.total_deposited,
            'paid': self.total_paid,
            'skimmed': self.total_skimmed,
            'owed': self.total_owed,
            'balance': self.balance,
        }
