import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def settlement_bed():
    from settlement.domain import settlement

    bed = DomainFixture(settlement)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(settlement_bed):
    with settlement_bed.domain_context():
        yield

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------
@pytest.fixture()
def gateway():
    from settlement.gateway import set_gateway
    from settlement.gateway.fake_adapter import FakeGateway

    fake = FakeGateway()
    set_gateway(fake)
    return fake


@pytest.fixture()
def realtime():
    from settlement.notifications.channel import REALTIME, get_channel

    return get_channel(REALTIME)


@pytest.fixture()
def email():
    from settlement.notifications.channel import EMAIL, get_channel

    return get_channel(EMAIL)


# ---------------------------------------------------------------------------
# Parties
# ---------------------------------------------------------------------------
@pytest.fixture()
def merchant():
    from settlement.party.party import Vendor

    vendor = Vendor(
        id="merchant-001",
        name="Moonlit Crystals",
        email="shop@moonlit.example",
        stripe_account_id="acct_merchant_001",
    )
    current_domain.repository_for(Vendor).add(vendor)
    return vendor


@pytest.fixture()
def customer():
    from settlement.party.party import Customer

    record = Customer(id="cust-001", email="ada@example.com", name="Ada", user_id="user-001")
    current_domain.repository_for(Customer).add(record)
    return record


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
@pytest.fixture()
def stock():
    from settlement.inventory.inventory import VariantInventory

    def _stock(variant_id="V1", qty_on_hand=10, qty_committed=2, **kwargs):
        record = VariantInventory.create(
            variant_id,
            qty_on_hand=qty_on_hand,
            qty_committed=qty_committed,
            merchant_id="merchant-001",
            **kwargs,
        )
        current_domain.repository_for(VariantInventory).add(record)
        return record

    return _stock


@pytest.fixture()
def charge(gateway):
    from settlement.gateway.port import ChargeDetails

    def _charge(charge_id="ch_001", amount=5000, balance_net=4000, fee_details=None, currency="aud"):
        details = ChargeDetails(
            id=charge_id,
            amount=amount,
            currency=currency,
            payment_intent_id=f"pi_{charge_id}",
            card_brand="visa",
            card_last4="4242",
            balance_net=balance_net,
            fee_details=fee_details
            if fee_details is not None
            else [
                {"type": "stripe_fee", "amount": 205},
                {"type": "tax", "amount": 20},
                {"type": "application_fee", "amount": 775},
            ],
        )
        return gateway.register_charge(details)

    return _charge


@pytest.fixture()
def new_order():
    """Build an order without lines; call ``save`` on the result to persist it."""
    from settlement.order.order import Order

    def _order(order_id="O1", reference=None, **kwargs):
        return Order.create(
            customer_email="ada@example.com",
            customer_id="cust-001",
            code=kwargs.pop("code", "ORD-0001"),
            reference=reference,
            id=order_id,
            **kwargs,
        )

    return _order


@pytest.fixture()
def save():
    from settlement.order.order import Order

    def _save(order):
        current_domain.repository_for(Order).add(order)
        return current_domain.repository_for(Order).get(order.id)

    return _save


@pytest.fixture()
def product_order(new_order, save):
    from settlement.order.order import LineTarget

    def _product_order(order_id="O1", merchant_id="merchant-001", variant_id="V1", amount=5000, quantity=2, **line_kwargs):
        order = new_order(order_id)
        order.add_line(
            LineTarget.PRODUCT_PURCHASE,
            merchant_id,
            amount,
            quantity=quantity,
            variant_id=variant_id,
            descriptor=line_kwargs.pop("descriptor", "Amethyst cluster"),
            **line_kwargs,
        )
        return save(order)

    return _product_order


@pytest.fixture()
def load_order():
    from settlement.order.order import Order

    def _load(order_id="O1"):
        return current_domain.repository_for(Order).get(order_id)

    return _load
