"""Transaction charge schedules for simulated equity trades.

The market of a symbol is resolved from its suffix (``.NS``/``.BO`` India,
``.L`` London, ``.DE``/``.PA``/``.AS`` Europe, ``.T`` Tokyo, a few other
exchanges with a generic schedule, and US listings for bare symbols). Each
market has a fee schedule computing the breakdown for a single trade and the
currency the order is recorded in. Amounts are not converted between
currencies.

The Indian schedule distinguishes delivery and intraday products: brokerage,
securities transaction tax, exchange and regulatory charges, stamp duty,
depository settlement charge, and the tax on services levied on top of the
broker and exchange fees. Other markets ignore the product type.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from src.paper_trading.models import (
    ChargeBreakdown,
    ChargeComponents,
    OrderSide,
    ProductType,
    normalize_symbol,
)

CENT = Decimal("0.01")
ZERO = Decimal("0")


@dataclass(frozen=True)
class MarketInfo:
    """Market of a symbol and the currency its orders are recorded in."""

    market: str
    currency: str


US_MARKET = MarketInfo("us", "USD")

SUFFIX_MARKETS: tuple[tuple[tuple[str, ...], MarketInfo], ...] = (
    ((".NS", ".BO"), MarketInfo("india", "INR")),
    ((".L",), MarketInfo("uk", "GBP")),
    ((".DE", ".PA", ".AS"), MarketInfo("europe", "EUR")),
    ((".T",), MarketInfo("japan", "JPY")),
    ((".HK",), MarketInfo("other", "HKD")),
    ((".AX",), MarketInfo("other", "AUD")),
    ((".TO",), MarketInfo("other", "CAD")),
)


def resolve_market(symbol: str) -> MarketInfo:
    """Resolve the market of a symbol from its exchange suffix.

    Symbols without a known suffix are treated as US listings.
    """
    key = normalize_symbol(symbol)
    for suffixes, info in SUFFIX_MARKETS:
        if key.endswith(suffixes):
            return info
    return US_MARKET


class BaseFeeSchedule(ABC):
    """Shared validation, commission override and rounding of fee schedules.

    Subclasses provide the brokerage and the remaining components. Rates are
    fractions of turnover (quantity x price) unless noted.
    """

    CURRENCY = "INR"
    ROUNDING_STEP = CENT

    def __init__(self, commission: Decimal | None = None) -> None:
        """Initialize the fee schedule.

        Args:
            commission: Flat commission per order. When positive it replaces
                the computed brokerage.
        """
        self.commission = commission if commission and commission > 0 else None

    @property
    def currency(self) -> str:
        """Currency the schedule's amounts are expressed in."""
        return self.CURRENCY

    def _round(self, value: Decimal) -> Decimal:
        return value.quantize(self.ROUNDING_STEP, rounding=ROUND_HALF_UP)

    @abstractmethod
    def _brokerage(
        self, quantity: Decimal, turnover: Decimal, intraday: bool
    ) -> Decimal:
        """Brokerage before any commission override."""

    @abstractmethod
    def _components(
        self,
        is_buy: bool,
        intraday: bool,
        quantity: Decimal,
        turnover: Decimal,
        brokerage: Decimal,
    ) -> dict[str, Decimal]:
        """Charge components other than brokerage, unrounded."""

    def calculate(
        self,
        side: OrderSide,
        quantity: Decimal,
        price: Decimal,
        product_type: ProductType = ProductType.DELIVERY,
    ) -> ChargeBreakdown:
        """Calculate the charge breakdown for one trade.

        The total is the rounded sum of the unrounded components, so it can
        differ by a cent from the sum of the displayed components.

        Args:
            side: BUY or SELL
            quantity: Units traded
            price: Price per unit
            product_type: Delivery or intraday fee regime

        Returns:
            ChargeBreakdown with components, total charges and net amount

        Raises:
            ValueError: If quantity or price is negative
        """
        if quantity < 0:
            raise ValueError(f"quantity must be non-negative, got {quantity}")
        if price < 0:
            raise ValueError(f"price must be non-negative, got {price}")

        side = OrderSide(side)
        product_type = ProductType(product_type)
        is_buy = side == OrderSide.BUY
        intraday = product_type == ProductType.INTRADAY
        turnover = quantity * price

        if self.commission is not None:
            brokerage = self.commission
        else:
            brokerage = self._brokerage(quantity, turnover, intraday)

        components = {"brokerage": brokerage}
        components.update(
            self._components(is_buy, intraday, quantity, turnover, brokerage)
        )
        total_charges = self._round(sum(components.values(), ZERO))
        net_amount = turnover + total_charges if is_buy else turnover - total_charges

        return ChargeBreakdown(
            side=side,
            product_type=product_type,
            quantity=quantity,
            price=price,
            currency=self.currency,
            gross_amount=self._round(turnover),
            charges=ChargeComponents(
                **{name: self._round(value) for name, value in components.items()}
            ),
            total_charges=total_charges,
            net_amount=self._round(net_amount),
        )


class FeeSchedule(BaseFeeSchedule):
    """Indian (NSE/BSE) fee schedule for delivery and intraday trades.

    Attributes:
        BROKERAGE_RATE: Intraday brokerage (0.03%), capped at BROKERAGE_CAP
        BROKERAGE_CAP: Maximum intraday brokerage per order (20)
        STT_DELIVERY_RATE: Transaction tax on delivery BUY and SELL (0.1%)
        STT_INTRADAY_SELL_RATE: Transaction tax on intraday SELL only (0.025%)
        EXCHANGE_RATE: Exchange transaction charge (0.00325%)
        REGULATORY_RATE: Regulator turnover fee (10 per crore)
        STAMP_DUTY_DELIVERY_RATE: Stamp duty on delivery BUY (0.015%)
        STAMP_DUTY_INTRADAY_RATE: Stamp duty on intraday BUY (0.003%)
        SETTLEMENT_CHARGE: Flat depository charge per delivery SELL (15.93)
        SERVICE_TAX_RATE: Tax on brokerage + exchange + regulatory (18%)
    """

    CURRENCY = "INR"
    BROKERAGE_RATE = Decimal("0.0003")
    BROKERAGE_CAP = Decimal("20")
    STT_DELIVERY_RATE = Decimal("0.001")
    STT_INTRADAY_SELL_RATE = Decimal("0.00025")
    EXCHANGE_RATE = Decimal("0.0000325")
    REGULATORY_RATE = Decimal("10") / Decimal("10000000")
    STAMP_DUTY_DELIVERY_RATE = Decimal("0.00015")
    STAMP_DUTY_INTRADAY_RATE = Decimal("0.00003")
    SETTLEMENT_CHARGE = Decimal("15.93")
    SERVICE_TAX_RATE = Decimal("0.18")

    def _brokerage(
        self, quantity: Decimal, turnover: Decimal, intraday: bool
    ) -> Decimal:
        if not intraday:
            return ZERO
        return min(turnover * self.BROKERAGE_RATE, self.BROKERAGE_CAP)

    def _components(
        self,
        is_buy: bool,
        intraday: bool,
        quantity: Decimal,
        turnover: Decimal,
        brokerage: Decimal,
    ) -> dict[str, Decimal]:
        if intraday:
            transaction_tax = ZERO if is_buy else turnover * self.STT_INTRADAY_SELL_RATE
        else:
            transaction_tax = turnover * self.STT_DELIVERY_RATE

        exchange_charge = turnover * self.EXCHANGE_RATE
        regulatory_charge = turnover * self.REGULATORY_RATE

        stamp_duty = ZERO
        if is_buy:
            stamp_rate = (
                self.STAMP_DUTY_INTRADAY_RATE
                if intraday
                else self.STAMP_DUTY_DELIVERY_RATE
            )
            stamp_duty = turnover * stamp_rate

        settlement_charge = ZERO
        if not intraday and not is_buy and quantity > 0:
            settlement_charge = self.SETTLEMENT_CHARGE

        return {
            "transaction_tax": transaction_tax,
            "exchange_charge": exchange_charge,
            "regulatory_charge": regulatory_charge,
            "stamp_duty": stamp_duty,
            "settlement_charge": settlement_charge,
            "service_tax": (brokerage + exchange_charge + regulatory_charge)
            * self.SERVICE_TAX_RATE,
        }


class UsFeeSchedule(BaseFeeSchedule):
    """US (NYSE/NASDAQ) schedule of a zero-commission broker.

    Sells pay the SEC fee (5.10 per million of turnover) and the FINRA
    trading activity fee (0.000119 per share), both reported as the
    regulatory charge.
    """

    CURRENCY = "USD"
    SEC_FEE_RATE = Decimal("5.10") / Decimal("1000000")
    FINRA_TAF_PER_SHARE = Decimal("0.000119")

    def _brokerage(
        self, quantity: Decimal, turnover: Decimal, intraday: bool
    ) -> Decimal:
        return ZERO

    def _components(
        self,
        is_buy: bool,
        intraday: bool,
        quantity: Decimal,
        turnover: Decimal,
        brokerage: Decimal,
    ) -> dict[str, Decimal]:
        if is_buy:
            return {}
        return {
            "regulatory_charge": turnover * self.SEC_FEE_RATE
            + quantity * self.FINRA_TAF_PER_SHARE
        }


class _FlatBrokerageSchedule(BaseFeeSchedule):
    """Schedule with a flat brokerage per non-empty order."""

    FLAT_BROKERAGE = ZERO

    def _brokerage(
        self, quantity: Decimal, turnover: Decimal, intraday: bool
    ) -> Decimal:
        return self.FLAT_BROKERAGE if quantity > 0 else ZERO


class UkFeeSchedule(_FlatBrokerageSchedule):
    """London schedule: flat brokerage, 0.5% stamp duty on buys, PTM levy."""

    CURRENCY = "GBP"
    FLAT_BROKERAGE = Decimal("10")
    STAMP_DUTY_RATE = Decimal("0.005")
    PTM_LEVY_RATE = Decimal("0.0001")

    def _components(
        self,
        is_buy: bool,
        intraday: bool,
        quantity: Decimal,
        turnover: Decimal,
        brokerage: Decimal,
    ) -> dict[str, Decimal]:
        return {
            "stamp_duty": turnover * self.STAMP_DUTY_RATE if is_buy else ZERO,
            "regulatory_charge": turnover * self.PTM_LEVY_RATE,
        }


class EuropeanFeeSchedule(_FlatBrokerageSchedule):
    """Euro-area schedule: flat brokerage, 0.2% transaction tax, exchange fee."""

    CURRENCY = "EUR"
    FLAT_BROKERAGE = Decimal("10")
    TRANSACTION_TAX_RATE = Decimal("0.002")
    EXCHANGE_RATE = Decimal("0.0001")

    def _components(
        self,
        is_buy: bool,
        intraday: bool,
        quantity: Decimal,
        turnover: Decimal,
        brokerage: Decimal,
    ) -> dict[str, Decimal]:
        return {
            "transaction_tax": turnover * self.TRANSACTION_TAX_RATE,
            "exchange_charge": turnover * self.EXCHANGE_RATE,
        }


class JapaneseFeeSchedule(_FlatBrokerageSchedule):
    """Tokyo schedule: flat brokerage plus 10% consumption tax, whole yen."""

    CURRENCY = "JPY"
    ROUNDING_STEP = Decimal("1")
    FLAT_BROKERAGE = Decimal("500")
    CONSUMPTION_TAX_RATE = Decimal("0.10")
    EXCHANGE_RATE = Decimal("0.0001")

    def _components(
        self,
        is_buy: bool,
        intraday: bool,
        quantity: Decimal,
        turnover: Decimal,
        brokerage: Decimal,
    ) -> dict[str, Decimal]:
        return {
            "exchange_charge": turnover * self.EXCHANGE_RATE,
            "service_tax": brokerage * self.CONSUMPTION_TAX_RATE,
        }


class GenericFeeSchedule(BaseFeeSchedule):
    """Fallback schedule: 0.1% brokerage, 0.01% regulatory fee, 0.1% tax."""

    BROKERAGE_RATE = Decimal("0.001")
    REGULATORY_RATE = Decimal("0.0001")
    TRANSACTION_TAX_RATE = Decimal("0.001")

    def __init__(
        self, currency: str = "USD", commission: Decimal | None = None
    ) -> None:
        super().__init__(commission)
        self._currency = currency

    @property
    def currency(self) -> str:
        return self._currency

    def _brokerage(
        self, quantity: Decimal, turnover: Decimal, intraday: bool
    ) -> Decimal:
        return turnover * self.BROKERAGE_RATE

    def _components(
        self,
        is_buy: bool,
        intraday: bool,
        quantity: Decimal,
        turnover: Decimal,
        brokerage: Decimal,
    ) -> dict[str, Decimal]:
        return {
            "regulatory_charge": turnover * self.REGULATORY_RATE,
            "transaction_tax": turnover * self.TRANSACTION_TAX_RATE,
        }


MARKET_SCHEDULES: dict[str, type[BaseFeeSchedule]] = {
    "india": FeeSchedule,
    "us": UsFeeSchedule,
    "uk": UkFeeSchedule,
    "europe": EuropeanFeeSchedule,
    "japan": JapaneseFeeSchedule,
}


def fee_schedule_for(
    symbol: str, commission: Decimal | None = None
) -> BaseFeeSchedule:
    """Return the fee schedule of the symbol's market.

    Args:
        symbol: Instrument symbol.
        commission: Flat commission override passed to the schedule.

    Returns:
        Schedule for the market resolved from the symbol suffix.
    """
    info = resolve_market(symbol)
    schedule_class = MARKET_SCHEDULES.get(info.market)
    if schedule_class is None:
        return GenericFeeSchedule(currency=info.currency, commission=commission)
    return schedule_class(commission=commission)
