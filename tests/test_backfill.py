import pytest

from app.market.services import purchase_service
from app.market.services.backfill_service import BackfillStrategy, EntitlementBackfill


async def test_owner_strategy_creates_single_entitlement_and_is_idempotent(factory, session_factory):
    # Scenario D
    u3 = await factory.user("u3")
    d3 = await factory.design(u3, price=0, downloads=5)

    first = await EntitlementBackfill(session_factory).run()
    second = await EntitlementBackfill(session_factory).run()

    rows = await factory.purchases(d3, u3)
    assert len(rows) == 1
    assert rows[0].amount == 0
    assert rows[0].status.value == "completed"
    assert rows[0].currency == "USD"
    assert (first.created, first.skipped_existing) == (1, 0)
    assert (second.created, second.skipped_existing) == (0, 1)


async def test_paid_and_undownloaded_designs_are_not_backfilled(factory, session_factory):
    seller = await factory.user("seller")
    paid = await factory.design(seller, price="12.50", downloads=9)
    untouched = await factory.design(seller, price=None, downloads=0)

    report = await EntitlementBackfill(session_factory).run()

    assert report.skipped_paid == 1
    assert report.created == 0
    assert await factory.purchases(paid) == []
    assert await factory.purchases(untouched) == []


async def test_design_currency_is_carried_over(factory, session_factory):
    seller = await factory.user("seller")
    design_id = await factory.design(seller, price=None, downloads=1, currency="EUR")

    await EntitlementBackfill(session_factory).run()

    assert (await factory.purchases(design_id))[0].currency == "EUR"


async def test_download_log_strategy_grants_each_distinct_downloader(factory, session_factory):
    seller = await factory.user("seller")
    alice = await factory.user("alice")
    bob = await factory.user("bob")
    design_id = await factory.design(seller, price=0, downloads=4)
    file_id = await factory.file(design_id, "designs/1/pack.zip")
    await factory.download_event(design_id, file_id, alice)
    await factory.download_event(design_id, file_id, alice)
    await factory.download_event(design_id, file_id, bob)
    await factory.download_event(design_id, file_id, None)

    job = EntitlementBackfill(session_factory, strategy=BackfillStrategy.DOWNLOAD_LOG, page_size=1)
    report = await job.run()
    again = await job.run()

    assert report.created == 2
    assert again.created == 0
    assert {p.user_id for p in await factory.purchases(design_id)} == {alice, bob}
    assert len(await factory.purchases(design_id)) == 2


async def test_row_failure_is_logged_and_batch_continues(factory, session_factory, monkeypatch, caplog):
    seller = await factory.user("seller")
    broken = await factory.design(seller, price=0, downloads=1)
    healthy = await factory.design(seller, price=0, downloads=1)

    original = purchase_service.ensure_free_entitlement

    async def flaky(db, user_id, design_id, **kwargs):
        if design_id == broken:
            raise RuntimeError("insert rejected")
        return await original(db, user_id, design_id, **kwargs)

    monkeypatch.setattr(purchase_service, "ensure_free_entitlement", flaky)

    report = await EntitlementBackfill(session_factory, page_size=10).run()

    assert report.failed == 1
    assert report.failures[0]["design_id"] == broken
    assert report.created == 1
    assert len(await factory.purchases(healthy)) == 1
    assert "FAIL" in caplog.text

    # 재실행하면 실패했던 행만 새로 처리된다
    monkeypatch.setattr(purchase_service, "ensure_free_entitlement", original)
    rerun = await EntitlementBackfill(session_factory).run()
    assert (rerun.created, rerun.skipped_existing, rerun.failed) == (1, 1, 0)


@pytest.mark.parametrize("strategy", ["owner", "download_log"])
def test_strategy_is_accepted_as_string(session_factory, strategy):
    job = EntitlementBackfill(session_factory, strategy=strategy)
    assert job.strategy == BackfillStrategy(strategy)
