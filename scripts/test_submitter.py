"""Transaction submission: gas, retries, backoff and nonce handling."""

from __future__ import annotations

import asyncio

import pytest

from conftest import ACCOUNT, GWEI, NOW, make_params, receipt
from ai_trader.ledger.abi import TRADE_SIGNATURES, function_selector
from ai_trader.ledger.confirmation import ConfirmationTracker
from ai_trader.ledger.gas import GasPriceOracle
from ai_trader.ledger.submitter import TransactionSubmitter, retry_delay
from ai_trader.models.enums import TradeType


def build_submitter(ledger, sleeper, tracker_sleep=None):
    async def no_wait(_delay: float) -> None:
        return None

    tracker = ConfirmationTracker(ledger, max_blocks=12, sleep=tracker_sleep or no_wait)
    oracle = GasPriceOracle(ledger, clock=lambda: 0.0)
    return TransactionSubmitter(
        ledger,
        oracle,
        tracker,
        max_attempts=3,
        sleep=sleeper,
        clock=lambda: NOW,
    )


def test_retry_delay_doubles_and_caps():
    assert [retry_delay(n) for n in range(1, 7)] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]


def test_estimate_gas_adds_twenty_percent_rounded_up(ledger, sleeper):
    submitter = build_submitter(ledger, sleeper)
    ledger.estimate = 100_000
    assert asyncio.run(submitter.estimate_gas({"data": "0x"})) == 120_000
    ledger.estimate = 100_001
    assert asyncio.run(submitter.estimate_gas({"data": "0x"})) == 120_002


@pytest.mark.parametrize(
    "data, expected",
    [
        (function_selector(TRADE_SIGNATURES[TradeType.NATIVE_TO_TOKEN]) + "00" * 32, 300_000),
        (function_selector(TRADE_SIGNATURES[TradeType.TOKEN_TO_NATIVE]) + "00" * 32, 250_000),
        (function_selector(TRADE_SIGNATURES[TradeType.TOKEN_TO_TOKEN]) + "00" * 32, 200_000),
        ("0x", 200_000),
    ],
)
def test_estimate_gas_falls_back_by_selector(ledger, sleeper, data, expected):
    submitter = build_submitter(ledger, sleeper)
    ledger.estimate = RuntimeError("execution reverted")
    assert asyncio.run(submitter.estimate_gas({"data": data})) == expected


def test_submit_builds_priced_transaction(ledger, sleeper):
    submitter = build_submitter(ledger, sleeper)
    params = make_params(TradeType.NATIVE_TO_TOKEN)

    result = asyncio.run(submitter.submit(params, ACCOUNT.lower()))

    assert result.success
    assert result.attempts == 1
    assert result.tx_hash == ledger.hashes[0]
    tx = ledger.sent[0]
    assert tx["nonce"] == 7
    assert tx["gas"] == 120_000
    assert tx["gasPrice"] == 25 * GWEI * 110 // 100
    assert tx["value"] == params.amount_in
    assert tx["to"] == ledger.trader_address
    assert tx["from"] == ACCOUNT
    assert sleeper.delays == []


def test_token_input_trades_send_no_value(ledger, sleeper):
    submitter = build_submitter(ledger, sleeper)
    result = asyncio.run(submitter.submit(make_params(TradeType.TOKEN_TO_NATIVE), ledger.trader_address))
    assert result.success
    assert ledger.sent[0]["value"] == 0


def test_invalid_prediction_blocks_submission(ledger, sleeper):
    submitter = build_submitter(ledger, sleeper)
    ledger.prediction_valid = False
    result = asyncio.run(submitter.submit(make_params(), ledger.trader_address))
    assert not result.success
    assert result.error == "AI prediction validation failed"
    assert ledger.sent == []


def test_prediction_lookup_error_counts_as_invalid(ledger, sleeper):
    submitter = build_submitter(ledger, sleeper)
    ledger.prediction_error = ConnectionError("rpc down")
    result = asyncio.run(submitter.submit(make_params(), ledger.trader_address))
    assert not result.success
    assert result.error == "AI prediction validation failed"
    assert ledger.sent == []


def test_expired_deadline_is_rejected_before_sending(ledger, sleeper):
    submitter = build_submitter(ledger, sleeper)
    result = asyncio.run(submitter.submit(make_params(deadline=NOW - 1), ledger.trader_address))
    assert not result.success
    assert "deadline" in result.error
    assert ledger.sent == []


def test_reverts_are_retried_with_backoff_and_fresh_nonce(ledger, sleeper):
    submitter = build_submitter(ledger, sleeper)
    ledger.outcomes = ["revert", "revert", "confirm"]

    result = asyncio.run(submitter.submit(make_params(), ledger.trader_address))

    assert result.success
    assert result.attempts == 3
    assert sleeper.delays == [1.0, 2.0]
    assert [tx["nonce"] for tx in ledger.sent] == [7, 8, 9]


def test_exhausted_retries_return_last_error_without_trailing_sleep(ledger, sleeper):
    submitter = build_submitter(ledger, sleeper)
    ledger.outcomes = ["revert", "revert", "revert"]

    result = asyncio.run(submitter.submit(make_params(), ledger.trader_address))

    assert not result.success
    assert result.error == "Transaction failed on-chain"
    assert result.attempts == 3
    assert sleeper.delays == [1.0, 2.0]


def test_send_errors_are_reported_as_failed_result(ledger, sleeper):
    submitter = build_submitter(ledger, sleeper)
    ledger.outcomes = [ConnectionError("connection reset")] * 3

    result = asyncio.run(submitter.submit(make_params(), ledger.trader_address))

    assert not result.success
    assert result.error == "connection reset"
    assert result.tx_hash is None
    assert len(sleeper.delays) == 2


def test_timeout_resends_same_nonce_with_higher_gas_price(ledger, sleeper):
    submitter = build_submitter(ledger, sleeper)
    ledger.block_step = 20
    ledger.outcomes = ["timeout", "confirm"]

    result = asyncio.run(submitter.submit(make_params(), ledger.trader_address))

    assert result.success
    assert result.tx_hash == ledger.hashes[1]
    first, second = ledger.sent
    assert second["nonce"] == first["nonce"]
    assert second["gasPrice"] == first["gasPrice"] * 1125 // 1000


def test_late_confirmation_is_not_sent_twice(ledger):
    ledger.block_step = 20
    ledger.outcomes = ["timeout"]
    delays = []

    async def sleep_and_mine(delay: float) -> None:
        delays.append(delay)
        ledger.receipts[ledger.hashes[0]] = receipt(ledger.hashes[0], 1, ledger.block)

    submitter = build_submitter(ledger, sleep_and_mine)
    result = asyncio.run(submitter.submit(make_params(), ledger.trader_address))

    assert result.success
    assert result.tx_hash == ledger.hashes[0]
    assert isinstance(result.tx_hash, str)
    assert len(ledger.sent) == 1
    assert delays == [1.0]


def test_unconfirmed_broadcast_reports_last_hash(ledger, sleeper):
    submitter = build_submitter(ledger, sleeper)
    ledger.block_step = 20
    ledger.outcomes = ["timeout", "timeout", "timeout"]

    result = asyncio.run(submitter.submit(make_params(), ledger.trader_address))

    assert not result.success
    assert result.tx_hash == ledger.hashes[-1]
    assert "not confirmed" in result.error
    assert len({tx["nonce"] for tx in ledger.sent}) == 1
