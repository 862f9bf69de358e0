"""Tests for RelayService."""

import asyncio
from decimal import Decimal

import pytest

from tests.apps.relay.fakes import (
    ScriptedFactory,
    ScriptedSession,
    authorize_reply,
    buy_reply,
    contract_update,
    error_reply,
)
from trade_relay.apps.relay.config import RelayConfig
from trade_relay.apps.relay.models import ContractOutcome, TradeRequest
from trade_relay.apps.relay.service import RelayService
from trade_relay.clients.deriv.exceptions import DerivAPIError

_CONFIG = RelayConfig(request_timeout_seconds=1.0, contract_timeout_seconds=1.0)
_REQUEST = TradeRequest(amount=Decimal(10), duration=5, contract_type="CALL")


def _trade_session(
    sell_price: float | None = 15, *, contract_id: int = 42, open_delay: float = 0.0
) -> ScriptedSession:
    updates = [contract_update(contract_id, sell_price=sell_price)] if sell_price else []
    return ScriptedSession(
        [authorize_reply(), buy_reply(contract_id, 10), *updates], open_delay=open_delay
    )


class TestConnect:
    """Tests for opening relay sessions."""

    @pytest.mark.asyncio
    async def test_connect_registers_session(self) -> None:
        """Create a session holding the token and account."""
        service = RelayService(_CONFIG, ScriptedFactory(ScriptedSession([authorize_reply()])))

        session, account = await service.connect("T1")

        assert account.login_id == "CR1"
        assert session.token == "T1"
        assert service.registry.latest() is session

    @pytest.mark.asyncio
    async def test_failed_connect_creates_no_session(self) -> None:
        """Leave the registry untouched when authorization fails."""
        factory = ScriptedFactory(ScriptedSession([error_reply("authorize", "InvalidToken")]))
        service = RelayService(_CONFIG, factory)

        with pytest.raises(DerivAPIError):
            await service.connect("bad")

        assert len(service.registry) == 0


class TestStartTrade:
    """Tests for starting trades and following them."""

    @pytest.mark.asyncio
    async def test_result_recorded_in_background(self) -> None:
        """Store the settled result once the contract is sold."""
        factory = ScriptedFactory(ScriptedSession([authorize_reply()]), _trade_session(15))
        service = RelayService(_CONFIG, factory)
        session, _ = await service.connect("T1")

        receipt = await service.start_trade(session, _REQUEST)
        assert receipt.contract_id == 42
        assert session.monitor is not None
        await session.monitor

        assert session.result is not None
        assert session.result.outcome is ContractOutcome.WIN
        text = service.read_result(session)
        assert text is not None
        assert "Ganancia/Pérdida Neta: 5.00 USD" in text

    @pytest.mark.asyncio
    async def test_new_trade_cancels_previous_monitor(self) -> None:
        """Stop following the earlier trade and clear its result."""
        factory = ScriptedFactory(
            ScriptedSession([authorize_reply()]),
            _trade_session(None),
            _trade_session(8),
        )
        service = RelayService(_CONFIG, factory)
        session, _ = await service.connect("T1")

        await service.start_trade(session, _REQUEST)
        first_monitor = session.monitor
        assert first_monitor is not None

        await service.start_trade(session, _REQUEST)
        with pytest.raises(asyncio.CancelledError):
            await first_monitor
        assert factory.created[1].closed is True

        assert session.monitor is not None
        await session.monitor
        assert session.result is not None
        assert session.result.outcome is ContractOutcome.LOSS

    @pytest.mark.asyncio
    async def test_rejected_buy_leaves_no_monitor(self) -> None:
        """Propagate the rejection without starting a background task."""
        factory = ScriptedFactory(
            ScriptedSession([authorize_reply()]),
            ScriptedSession(
                [authorize_reply(), error_reply("buy", "Stake too low", "InvalidStake")]
            ),
        )
        service = RelayService(_CONFIG, factory)
        session, _ = await service.connect("T1")

        with pytest.raises(DerivAPIError, match="Stake too low"):
            await service.start_trade(session, _REQUEST)

        assert session.monitor is None
        assert service.read_result(session) is None

    @pytest.mark.asyncio
    async def test_close_cancels_monitors(self) -> None:
        """Cancel trades still being followed on shutdown."""
        factory = ScriptedFactory(ScriptedSession([authorize_reply()]), _trade_session(None))
        service = RelayService(_CONFIG, factory)
        session, _ = await service.connect("T1")
        await service.start_trade(session, _REQUEST)
        monitor = session.monitor
        assert monitor is not None

        await service.close()

        assert monitor.cancelled() is True
        assert len(service.registry) == 0


class TestOverlappingTrades:
    """Tests for trades racing on one session."""

    @pytest.mark.asyncio
    async def test_concurrent_trades_follow_only_the_last(self) -> None:
        """Cancel the earlier trade's monitor when two trades overlap."""
        factory = ScriptedFactory(
            ScriptedSession([authorize_reply()]),
            _trade_session(None, contract_id=1, open_delay=0.01),
            _trade_session(None, contract_id=2, open_delay=0.01),
        )
        service = RelayService(_CONFIG, factory)
        session, _ = await service.connect("T1")

        receipts = await asyncio.gather(
            service.start_trade(session, _REQUEST),
            service.start_trade(session, _REQUEST),
        )
        await asyncio.sleep(0.01)

        assert [receipt.contract_id for receipt in receipts] == [1, 2]
        first, second = factory.created[1:]
        assert first.closed is True
        assert second.closed is False
        assert session.monitor is not None
        assert session.monitor.get_name() == "contract-2"

        await service.close()

        assert second.closed is True

    @pytest.mark.asyncio
    async def test_session_evicted_while_trading_stops_following(self) -> None:
        """Drop the monitor of a session evicted before its buy was confirmed."""
        config = RelayConfig(
            request_timeout_seconds=1.0, contract_timeout_seconds=1.0, max_sessions=1
        )
        factory = ScriptedFactory(
            ScriptedSession([authorize_reply("CR1")]),
            _trade_session(None, open_delay=0.02),
            ScriptedSession([authorize_reply("CR2")]),
        )
        service = RelayService(config, factory)
        session, _ = await service.connect("T1")

        receipt, (newer, _) = await asyncio.gather(
            service.start_trade(session, _REQUEST),
            service.connect("T2"),
        )
        await asyncio.sleep(0.01)

        assert receipt.contract_id == 42
        assert service.registry.get(session.session_id) is None
        assert service.registry.latest() is newer
        assert session.monitor is None
        assert factory.created[1].closed is True


def test_read_result_without_session() -> None:
    """Return None when there is no session."""
    assert RelayService.read_result(None) is None
