import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from app.market.core.errors import DesignNotFound, PermissionDenied, ResolutionError
from app.market.models.purchase import Purchase, PurchaseStatus
from app.market.schemas.download import EntitlementReason
from app.market.services.entitlement_service import EntitlementResolver


@pytest.fixture
async def seller(factory):
    return await factory.user("seller")


@pytest.fixture
async def buyer(factory):
    return await factory.user("buyer")


@pytest.fixture
def resolver(session_factory):
    return EntitlementResolver(session_factory)


@pytest.mark.parametrize(
    "price, free_flag",
    [(None, False), (0, False), (0, True), ("25.00", True)],
)
async def test_free_designs_are_granted_to_everyone(factory, resolver, seller, buyer, price, free_flag):
    design_id = await factory.design(seller, price=price, is_free_download=free_flag)

    for user_id in (None, buyer, seller):
        decision = await resolver.resolve(user_id, design_id)
        assert decision.granted
        assert decision.reason == EntitlementReason.FREE


async def test_free_flag_wins_over_positive_price(factory, resolver, seller):
    design_id = await factory.design(seller, price="99.00", is_free_download=True)

    decision = await resolver.resolve(None, design_id)

    assert decision.granted
    assert decision.is_free


async def test_anonymous_is_denied_for_paid_design(factory, resolver, seller):
    design_id = await factory.design(seller, price="25.00")

    decision = await resolver.resolve(None, design_id)

    assert not decision.granted
    assert decision.reason == EntitlementReason.ANONYMOUS


async def test_owner_is_granted_without_purchase(factory, resolver, seller):
    design_id = await factory.design(seller, price="25.00")

    decision = await resolver.resolve(seller, design_id)

    assert decision.granted
    assert decision.reason == EntitlementReason.OWNER


async def test_purchase_grants_and_removal_denies(factory, resolver, session_factory, seller, buyer):
    design_id = await factory.design(seller, price="25.00")

    assert (await resolver.resolve(buyer, design_id)).reason == EntitlementReason.NOT_PURCHASED

    purchase_id = await factory.purchase(buyer, design_id)
    decision = await resolver.resolve(buyer, design_id)
    assert decision.granted
    assert decision.reason == EntitlementReason.PURCHASED

    async with session_factory() as db:
        await db.delete(await db.get(Purchase, purchase_id))
        await db.commit()

    decision = await resolver.resolve(buyer, design_id)
    assert not decision.granted
    assert decision.reason == EntitlementReason.NOT_PURCHASED


async def test_pending_purchase_does_not_grant(factory, resolver, seller, buyer):
    design_id = await factory.design(seller, price="25.00")
    await factory.purchase(buyer, design_id, status=PurchaseStatus.PENDING)

    decision = await resolver.resolve(buyer, design_id)

    assert not decision.granted


async def test_duplicate_purchases_are_harmless(factory, resolver, seller, buyer):
    design_id = await factory.design(seller, price="25.00")
    await factory.purchase(buyer, design_id)
    await factory.purchase(buyer, design_id)

    assert (await resolver.resolve(buyer, design_id)).granted


async def test_missing_design_raises_not_found(resolver, buyer):
    with pytest.raises(DesignNotFound):
        await resolver.resolve(buyer, 424242)


async def test_require_raises_permission_denied_with_decision(factory, resolver, seller, buyer):
    design_id = await factory.design(seller, price="25.00")

    with pytest.raises(PermissionDenied) as exc_info:
        await resolver.require(buyer, design_id)

    assert exc_info.value.decision.reason == EntitlementReason.NOT_PURCHASED


class _BrokenSession:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection refused"))


class _SlowSession(_BrokenSession):
    async def execute(self, *args, **kwargs):
        await asyncio.sleep(1)


async def test_backend_error_is_resolution_failure_not_denial():
    resolver = EntitlementResolver(_BrokenSession)

    with pytest.raises(ResolutionError):
        await resolver.resolve(1, 1)


async def test_timeout_is_resolution_failure():
    resolver = EntitlementResolver(_SlowSession, timeout=0.05)

    with pytest.raises(ResolutionError):
        await resolver.resolve(1, 1)
