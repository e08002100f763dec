"""Tests for storage repositories."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from conftest import BASE_TIME, create_signal, create_wallet

from polymarket_copy_signals.storage.models import OUTCOME_LOSS, OUTCOME_PENDING, OUTCOME_WIN
from polymarket_copy_signals.storage.repos import (
    LivePickDTO,
    LivePickRepository,
    NoteRepository,
    SignalDTO,
    SignalRepository,
    WalletRepository,
)


class TestWalletRepository:
    @pytest.mark.asyncio
    async def test_insert_if_absent(self, db) -> None:
        async with db.get_async_session() as session:
            repo = WalletRepository(session)
            wallet = await repo.insert_if_absent("0xABC", display_name="whale")
            duplicate = await repo.insert_if_absent("0xabc", display_name="other")

        assert wallet is not None
        assert wallet.proxy_wallet == "0xabc"
        assert wallet.force_fetch is True
        assert wallet.paused is False
        assert duplicate is None

    @pytest.mark.asyncio
    async def test_get_by_proxy_is_case_insensitive(self, db) -> None:
        wallet = await create_wallet(db, proxy_wallet="0xdeadbeef")
        async with db.get_async_session() as session:
            found = await WalletRepository(session).get_by_proxy("0xDEADBEEF")
        assert found is not None and found.id == wallet.id

    @pytest.mark.asyncio
    async def test_update_metrics(self, db) -> None:
        wallet = await create_wallet(db)
        async with db.get_async_session() as session:
            repo = WalletRepository(session)
            await repo.update_metrics(
                wallet.id, win_rate=62.5, losing_streak=3, live_picks=4, paused=True
            )
            updated = await repo.get(wallet.id)

        assert updated is not None
        assert updated.win_rate == 62.5
        assert updated.losing_streak == 3
        assert updated.live_picks == 4
        assert updated.paused is True
        assert updated.last_checked is not None

    @pytest.mark.asyncio
    async def test_paused_ids_and_bulk_unpause(self, db) -> None:
        recovered = await create_wallet(db, paused=True, win_rate=80.0)
        still_bad = await create_wallet(db, paused=True, win_rate=40.0)
        await create_wallet(db, paused=False, win_rate=90.0)

        async with db.get_async_session() as session:
            repo = WalletRepository(session)
            assert await repo.paused_ids() == {recovered.id, still_bad.id}
            assert await repo.bulk_unpause(70.0) == 1
            assert await repo.paused_ids() == {still_bad.id}


class TestSignalRepository:
    @pytest.mark.asyncio
    async def test_insert_is_idempotent_on_wallet_market_asset(self, db) -> None:
        wallet = await create_wallet(db)
        dto = SignalDTO(wallet_id=wallet.id, market_slug="m", tx_hash="asset-1", picked_outcome="Yes")

        async with db.get_async_session() as session:
            repo = SignalRepository(session)
            assert await repo.insert_if_absent(dto) is True
            assert await repo.insert_if_absent(dto) is False
            signals = await repo.list_for_wallet(wallet.id)

        assert len(signals) == 1
        assert signals[0].outcome == OUTCOME_PENDING
        assert signals[0].side == "BUY"

    @pytest.mark.asyncio
    async def test_same_asset_in_other_market_is_distinct(self, db) -> None:
        wallet = await create_wallet(db)
        await create_signal(db, wallet.id, "m1", "Yes", asset="shared")
        await create_signal(db, wallet.id, "m2", "Yes", asset="shared")

        async with db.get_async_session() as session:
            assert len(await SignalRepository(session).list_for_wallet(wallet.id)) == 2

    @pytest.mark.asyncio
    async def test_update_resolution_by_pick_resolves_one_row(self, db) -> None:
        wallet = await create_wallet(db)
        await create_signal(db, wallet.id, "m", "Yes", asset="a1")
        await create_signal(db, wallet.id, "m", "Yes", asset="a2", minutes=1)
        await create_signal(db, wallet.id, "m", "No", asset="a3", minutes=2)

        async with db.get_async_session() as session:
            repo = SignalRepository(session)
            updated = await repo.update_resolution_by_pick(
                wallet.id, "m", "Yes", pnl=Decimal("5"), outcome=OUTCOME_WIN, resolved_outcome="Yes"
            )
        assert updated == 2

        async with db.get_async_session() as session:
            signals = {s.tx_hash: s for s in await SignalRepository(session).list_for_wallet(wallet.id)}
        first_outcome_at = signals["a1"].outcome_at
        assert signals["a1"].outcome == OUTCOME_WIN
        assert signals["a2"].outcome == OUTCOME_PENDING
        assert signals["a2"].pnl == Decimal("5")
        assert signals["a3"].outcome == OUTCOME_PENDING
        assert first_outcome_at is not None

        async with db.get_async_session() as session:
            await SignalRepository(session).update_resolution_by_pick(
                wallet.id, "m", "Yes", pnl=Decimal("6"), outcome=OUTCOME_WIN, resolved_outcome="Yes"
            )
            again = {s.tx_hash: s for s in await SignalRepository(session).list_for_wallet(wallet.id)}
        assert again["a1"].outcome_at == first_outcome_at
        assert again["a1"].pnl == Decimal("6")

    @pytest.mark.asyncio
    async def test_pending_reprocess_does_not_reopen_terminal(self, db) -> None:
        wallet = await create_wallet(db)
        await create_signal(db, wallet.id, "m", "Yes", outcome=OUTCOME_LOSS, pnl=-3)

        async with db.get_async_session() as session:
            repo = SignalRepository(session)
            updated = await repo.update_resolution_by_pick(
                wallet.id, "m", "Yes", pnl=Decimal("1"), outcome=OUTCOME_PENDING, resolved_outcome=None
            )
            signals = await repo.list_for_wallet(wallet.id)

        assert updated == 0
        assert signals[0].outcome == OUTCOME_LOSS

    @pytest.mark.asyncio
    async def test_market_resolved_on_other_pick_stays_single(self, db) -> None:
        wallet = await create_wallet(db)
        await create_signal(db, wallet.id, "m", "Yes", asset="yes", outcome=OUTCOME_WIN, pnl=4)
        await create_signal(db, wallet.id, "m", "No", asset="no", minutes=1)

        async with db.get_async_session() as session:
            repo = SignalRepository(session)
            updated = await repo.update_resolution_by_pick(
                wallet.id, "m", "No", pnl=Decimal("-4.123456789"), outcome=OUTCOME_LOSS, resolved_outcome="Yes"
            )
            signals = {s.tx_hash: s for s in await repo.list_for_wallet(wallet.id)}

        assert updated == 1
        assert signals["yes"].outcome == OUTCOME_WIN
        assert signals["no"].outcome == OUTCOME_PENDING
        assert signals["no"].pnl == Decimal("-4.123457")

    @pytest.mark.asyncio
    async def test_resolved_and_pending_queries(self, db) -> None:
        wallet = await create_wallet(db)
        await create_signal(db, wallet.id, "m1", "Yes", outcome=OUTCOME_WIN, minutes=2)
        await create_signal(db, wallet.id, "m2", "No", outcome=OUTCOME_LOSS, minutes=1)
        await create_signal(db, wallet.id, "m3", "Yes", minutes=3)

        async with db.get_async_session() as session:
            repo = SignalRepository(session)
            resolved = await repo.list_resolved_for_wallet(wallet.id)
            pending = await repo.list_pending_for_wallets([wallet.id])
            assert await repo.count_pending_for_wallet(wallet.id) == 1
            assert await repo.list_pending_for_wallets([]) == []

        assert [s.market_slug for s in resolved] == ["m2", "m1"]
        assert [s.market_slug for s in pending] == ["m3"]

    @pytest.mark.asyncio
    async def test_mark_sent_only_fills_unsent(self, db) -> None:
        w1 = await create_wallet(db)
        w2 = await create_wallet(db)
        w3 = await create_wallet(db)
        earlier = BASE_TIME - timedelta(days=1)
        await create_signal(db, w1.id, "m", "Yes", signal_sent_at=earlier)
        await create_signal(db, w2.id, "m", "Yes")
        await create_signal(db, w3.id, "m", "Yes")

        async with db.get_async_session() as session:
            repo = SignalRepository(session)
            assert await repo.has_unsent("m", "Yes", [w1.id, w2.id]) is True
            assert await repo.mark_sent("m", "Yes", [w1.id, w2.id], BASE_TIME) == 1
            assert await repo.has_unsent("m", "Yes", [w1.id, w2.id]) is False
            # w3 was not part of the group
            assert await repo.has_unsent("m", "Yes", [w3.id]) is True
            assert await repo.has_unsent("m", "Yes", []) is False

    @pytest.mark.asyncio
    async def test_list_resolved_between(self, db) -> None:
        wallet = await create_wallet(db)
        start = datetime(2026, 10, 17, 4, 0, tzinfo=UTC)
        end = start + timedelta(days=1)
        await create_signal(
            db,
            wallet.id,
            "inside",
            "Yes",
            outcome=OUTCOME_WIN,
            outcome_at=start + timedelta(hours=1),
            signal_sent_at=start,
        )
        await create_signal(
            db,
            wallet.id,
            "unsent",
            "Yes",
            outcome=OUTCOME_WIN,
            outcome_at=start + timedelta(hours=2),
        )
        await create_signal(
            db,
            wallet.id,
            "outside",
            "Yes",
            outcome=OUTCOME_LOSS,
            outcome_at=end + timedelta(minutes=1),
            signal_sent_at=start,
        )

        async with db.get_async_session() as session:
            repo = SignalRepository(session)
            sent = await repo.list_resolved_between(start, end)
            everything = await repo.list_resolved_between(start, end, sent_only=False)

        assert [s.market_slug for s in sent] == ["inside"]
        assert [s.market_slug for s in everything] == ["inside", "unsent"]


class TestLivePickRepository:
    @pytest.mark.asyncio
    async def test_replace_all_truncates(self, db) -> None:
        async with db.get_async_session() as session:
            repo = LivePickRepository(session)
            await repo.replace_all(
                [
                    LivePickDTO(wallet_id=1, market_slug="m", picked_outcome="Yes", vote_count=2),
                    LivePickDTO(wallet_id=2, market_slug="m", picked_outcome="Yes", vote_count=2),
                ]
            )

        async with db.get_async_session() as session:
            repo = LivePickRepository(session)
            await repo.replace_all(
                [LivePickDTO(wallet_id=3, market_slug="n", picked_outcome="No", vote_count=1)]
            )
            rows = await repo.list_pending()

        assert [(r.wallet_id, r.market_slug) for r in rows] == [(3, "n")]

    @pytest.mark.asyncio
    async def test_replace_with_nothing(self, db) -> None:
        async with db.get_async_session() as session:
            repo = LivePickRepository(session)
            await repo.replace_all([LivePickDTO(wallet_id=1, market_slug="m", picked_outcome="Yes")])
            assert await repo.replace_all([]) == 0
            assert await repo.list_pending() == []

    @pytest.mark.asyncio
    async def test_list_for_wallet_orders_by_votes(self, db) -> None:
        async with db.get_async_session() as session:
            repo = LivePickRepository(session)
            await repo.replace_all(
                [
                    LivePickDTO(wallet_id=1, market_slug="a", picked_outcome="Yes", vote_count=1),
                    LivePickDTO(wallet_id=1, market_slug="b", picked_outcome="No", vote_count=4),
                ]
            )
            rows = await repo.list_for_wallet(1)

        assert [r.market_slug for r in rows] == ["b", "a"]


class TestNoteRepository:
    @pytest.mark.asyncio
    async def test_save_creates_then_updates(self, db) -> None:
        async with db.get_async_session() as session:
            repo = NoteRepository(session)
            assert await repo.get("signals") is None
            await repo.save("signals", "first", public=False)

        async with db.get_async_session() as session:
            repo = NoteRepository(session)
            await repo.save("signals", "second")
            note = await repo.get("signals")

        assert note is not None
        assert note.content == "second"
        assert note.public is True
