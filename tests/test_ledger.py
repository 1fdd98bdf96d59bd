"""Tests for the simulated ledger and anchor payloads."""

import pytest

from certikas.errors import LedgerUnavailable
from certikas.ledger.anchor import decode_anchor_payload, encode_anchor_payload
from certikas.ledger.port import explorer_url_for
from certikas.ledger.simulated import SimulatedLedger
from certikas.provenance.digest import digest


class TestSimulatedLedger:
    """Test the in-process chain."""

    @pytest.mark.asyncio
    async def test_depth_grows_with_mined_blocks(self):
        ledger = SimulatedLedger(start_height=100)
        submission = await ledger.submit(digest(b"doc"), {"category": "document"})

        assert submission.reference.startswith("kaspa:tx:")
        assert await ledger.confirmations(submission.reference) == 0
        ledger.mine()
        assert await ledger.confirmations(submission.reference) == 1
        ledger.mine(5)
        assert await ledger.confirmations(submission.reference) == 6

    @pytest.mark.asyncio
    async def test_blocks_per_poll_advances_chain(self):
        ledger = SimulatedLedger(blocks_per_poll=2)
        submission = await ledger.submit(digest(b"doc"), {})

        depths = [await ledger.confirmations(submission.reference) for _ in range(3)]
        assert depths == [2, 4, 6]

    @pytest.mark.asyncio
    async def test_unknown_reference_is_unconfirmed(self):
        ledger = SimulatedLedger()
        ledger.mine(10)
        assert await ledger.confirmations("kaspa:tx:unknown") == 0

    @pytest.mark.asyncio
    async def test_unavailable_node(self):
        ledger = SimulatedLedger()
        ledger.available = False
        with pytest.raises(LedgerUnavailable):
            await ledger.submit(digest(b"doc"), {})
        with pytest.raises(LedgerUnavailable):
            await ledger.confirmations("kaspa:tx:any")
        with pytest.raises(LedgerUnavailable):
            await ledger.estimate_fee()

    @pytest.mark.asyncio
    async def test_anchor_payload_recorded(self):
        ledger = SimulatedLedger()
        content_digest = digest(b"anchored")
        submission = await ledger.submit(content_digest, {"claimant_id": "kaspa:alice"})

        document = decode_anchor_payload(ledger.anchor_payload(submission.reference))
        assert document["contentHash"] == content_digest.hex
        assert document["metadata"] == {"claimant_id": "kaspa:alice"}

    def test_mine_rejects_negative(self):
        with pytest.raises(ValueError):
            SimulatedLedger().mine(-1)

    @pytest.mark.asyncio
    async def test_fee_quote(self):
        quote = await SimulatedLedger(fee=0.002).estimate_fee()
        assert quote.fee == 0.002
        assert quote.unit == "KAS"


class TestAnchorPayload:
    """Test anchor encoding."""

    def test_encoding_is_canonical(self):
        content_digest = digest(b"x")
        assert encode_anchor_payload(content_digest, {"b": 1, "a": 2}) == encode_anchor_payload(
            content_digest, {"a": 2, "b": 1}
        )

    def test_decode_rejects_garbage(self):
        with pytest.raises(ValueError):
            decode_anchor_payload("zz")

    def test_decode_rejects_foreign_protocol(self):
        foreign = b'{"protocol": "Other", "contentHash": ""}'.hex()
        with pytest.raises(ValueError):
            decode_anchor_payload(foreign)


@pytest.mark.parametrize(
    "network,expected",
    [
        ("mainnet", "https://explorer.kaspa.org/txs/abc"),
        ("testnet", "https://explorer-tn10.kaspa.org/txs/abc"),
        ("unknown", "https://explorer.kaspa.org/txs/abc"),
    ],
)
def test_explorer_url_for(network, expected):
    assert explorer_url_for(network, "abc") == expected
