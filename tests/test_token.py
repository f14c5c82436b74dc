"""Tests for the confidential token ledger."""

import pytest

from opaqueswap.addresses import ZERO_ADDRESS
from opaqueswap.contracts.token import UINT48_MAX, ConfidentialToken
from opaqueswap.crypto import UINT64_MAX
from opaqueswap.errors import AclViolation, InvalidArgument, UnauthorizedCaller, UnauthorizedSpender
from opaqueswap.fhe.handles import ZERO_HANDLE

HOUR = 3600


@pytest.fixture
def weth(system) -> ConfidentialToken:
    return system.token_a


class TestMint:
    """Tests for the faucet."""

    @pytest.mark.asyncio
    async def test_unknown_account_has_zero_handle(self, chain, weth, alice):
        assert await chain.call(weth.balance_of, alice.address) == ZERO_HANDLE
        assert await chain.call(weth.confidential_total_supply) == ZERO_HANDLE

    @pytest.mark.asyncio
    async def test_mint_credits_balance_and_supply(self, chain, weth, alice, reveal):
        receipt = await chain.send(alice.address, weth.mint, alice.address, 10)

        assert await reveal(weth, alice.address) == 10
        assert await reveal(await chain.call(weth.confidential_total_supply)) == 10
        [event] = receipt.events_named("ConfidentialTransfer")
        assert event.fields["from"] == ZERO_ADDRESS
        assert event.fields["to"] == alice.address

    @pytest.mark.asyncio
    async def test_mint_overflow_credits_zero(self, chain, weth, alice, bob, reveal):
        """A mint that would overflow the supply credits nothing."""
        await chain.send(alice.address, weth.mint, alice.address, UINT64_MAX)
        await chain.send(bob.address, weth.mint, bob.address, 1)

        assert await reveal(weth, bob.address) == 0
        assert await reveal(await chain.call(weth.confidential_total_supply)) == UINT64_MAX

    @pytest.mark.asyncio
    async def test_mint_to_zero_address_rejected(self, chain, weth, alice):
        with pytest.raises(InvalidArgument):
            await chain.send(alice.address, weth.mint, ZERO_ADDRESS, 1)

    @pytest.mark.asyncio
    async def test_restricted_minter(self, chain, deployer, alice, reveal):
        token = await chain.deploy(
            ConfidentialToken, deployer.address, "Wrapped Ether", "wETH", 6, deployer.address
        )

        with pytest.raises(UnauthorizedCaller):
            await chain.send(alice.address, token.mint, alice.address, 1)

        await chain.send(deployer.address, token.mint, alice.address, 1)
        assert await reveal(token, alice.address) == 1


class TestOperators:
    """Tests for time-bounded operator grants."""

    @pytest.mark.asyncio
    async def test_no_grant(self, chain, weth, alice, bob):
        assert not await chain.call(weth.is_operator, alice.address, bob.address)

    @pytest.mark.asyncio
    async def test_grant_and_expiry(self, chain, clock, weth, alice, bob):
        """A grant holds strictly before its expiry."""
        until = chain.now() + HOUR
        receipt = await chain.send(alice.address, weth.set_operator, bob.address, until)

        assert receipt.events_named("OperatorSet")[0].fields == {
            "holder": alice.address,
            "operator": bob.address,
            "until": until,
        }
        assert await chain.call(weth.is_operator, alice.address, bob.address)

        clock.set(until - 1)
        assert await chain.call(weth.is_operator, alice.address, bob.address)

        clock.set(until)
        assert not await chain.call(weth.is_operator, alice.address, bob.address)

    @pytest.mark.asyncio
    async def test_grant_is_directional(self, chain, weth, alice, bob):
        """A grant from alice to bob says nothing about bob's funds."""
        await chain.send(alice.address, weth.set_operator, bob.address, chain.now() + HOUR)

        assert not await chain.call(weth.is_operator, bob.address, alice.address)

    @pytest.mark.asyncio
    async def test_owner_is_not_implicit_operator(self, chain, weth, alice):
        assert not await chain.call(weth.is_operator, alice.address, alice.address)

    @pytest.mark.asyncio
    async def test_later_grant_overwrites(self, chain, weth, alice, bob):
        """Setting a past expiry revokes."""
        await chain.send(alice.address, weth.set_operator, bob.address, chain.now() + HOUR)
        await chain.send(alice.address, weth.set_operator, bob.address, chain.now() - 1)

        assert not await chain.call(weth.is_operator, alice.address, bob.address)

    @pytest.mark.asyncio
    async def test_expiry_must_fit_uint48(self, chain, weth, alice, bob):
        with pytest.raises(InvalidArgument):
            await chain.send(alice.address, weth.set_operator, bob.address, UINT48_MAX + 1)

        await chain.send(alice.address, weth.set_operator, bob.address, UINT48_MAX)
        assert await chain.call(weth.is_operator, alice.address, bob.address)


class TestTransfers:
    """Tests for confidential transfers."""

    @pytest.mark.asyncio
    async def test_transfer_from_input(self, chain, weth, alice, bob, encrypt, reveal):
        await chain.send(alice.address, weth.mint, alice.address, 10)
        handle, proof = await encrypt(4, weth.address, alice.address)

        receipt = await chain.send(
            alice.address, weth.confidential_transfer_input, bob.address, handle, proof
        )

        assert await reveal(weth, alice.address) == 6
        assert await reveal(weth, bob.address) == 4
        assert await reveal(receipt.result) == 4

    @pytest.mark.asyncio
    async def test_shortfall_transfers_zero(self, chain, weth, alice, bob, encrypt, reveal):
        """Transferring more than the balance silently moves nothing."""
        await chain.send(alice.address, weth.mint, alice.address, 5)
        handle, proof = await encrypt(7, weth.address, alice.address)

        receipt = await chain.send(
            alice.address, weth.confidential_transfer_input, bob.address, handle, proof
        )

        assert await reveal(weth, alice.address) == 5
        assert await reveal(weth, bob.address) == 0
        assert await reveal(receipt.result) == 0

    @pytest.mark.asyncio
    async def test_transfer_own_balance_handle(self, chain, weth, alice, bob, reveal):
        """A holder may transfer an amount handle they are allowed on."""
        await chain.send(alice.address, weth.mint, alice.address, 3)
        balance = await chain.call(weth.balance_of, alice.address)

        await chain.send(alice.address, weth.confidential_transfer, bob.address, balance)

        assert await reveal(weth, alice.address) == 0
        assert await reveal(weth, bob.address) == 3

    @pytest.mark.asyncio
    async def test_transfer_foreign_handle_rejected(self, chain, weth, alice, bob):
        """Spending a handle the caller is not allowed on is rejected."""
        await chain.send(alice.address, weth.mint, alice.address, 3)
        await chain.send(bob.address, weth.mint, bob.address, 3)
        alice_balance = await chain.call(weth.balance_of, alice.address)

        with pytest.raises(AclViolation):
            await chain.send(bob.address, weth.confidential_transfer, bob.address, alice_balance)

    @pytest.mark.asyncio
    async def test_malformed_amount_handle_rejected(self, chain, weth, alice, bob, reveal):
        await chain.send(alice.address, weth.mint, alice.address, 3)
        await chain.send(alice.address, weth.set_operator, bob.address, chain.now() + HOUR)

        for bad in ("0xnothex", "0x1234"):
            with pytest.raises(InvalidArgument):
                await chain.send(alice.address, weth.confidential_transfer, bob.address, bad)
            with pytest.raises(InvalidArgument):
                await chain.send(
                    bob.address, weth.confidential_transfer_from, alice.address, bob.address, bad
                )

        assert await reveal(weth, alice.address) == 3

    @pytest.mark.asyncio
    async def test_transfer_to_zero_address_rejected(self, chain, weth, alice, encrypt):
        await chain.send(alice.address, weth.mint, alice.address, 3)
        handle, proof = await encrypt(1, weth.address, alice.address)

        with pytest.raises(InvalidArgument):
            await chain.send(
                alice.address, weth.confidential_transfer_input, ZERO_ADDRESS, handle, proof
            )

    @pytest.mark.asyncio
    async def test_transfer_from_requires_grant(self, chain, weth, alice, bob, reveal):
        """Without a grant the call is rejected and nothing moves."""
        await chain.send(alice.address, weth.mint, alice.address, 10)
        await chain.send(bob.address, weth.mint, bob.address, 4)
        amount = await chain.call(weth.balance_of, bob.address)

        with pytest.raises(UnauthorizedSpender):
            await chain.send(
                bob.address, weth.confidential_transfer_from, alice.address, bob.address, amount
            )

        assert await reveal(weth, alice.address) == 10
        assert await reveal(weth, bob.address) == 4

    @pytest.mark.asyncio
    async def test_transfer_from_with_grant(self, chain, clock, weth, alice, bob, reveal):
        """An operator moves the holder's funds until the grant expires."""
        await chain.send(alice.address, weth.mint, alice.address, 10)
        await chain.send(bob.address, weth.mint, bob.address, 4)
        await chain.send(alice.address, weth.set_operator, bob.address, chain.now() + HOUR)
        amount = await chain.call(weth.balance_of, bob.address)

        await chain.send(
            bob.address, weth.confidential_transfer_from, alice.address, bob.address, amount
        )
        assert await reveal(weth, alice.address) == 6
        assert await reveal(weth, bob.address) == 8

        clock.advance(HOUR)
        amount = await chain.call(weth.balance_of, bob.address)
        with pytest.raises(UnauthorizedSpender):
            await chain.send(
                bob.address, weth.confidential_transfer_from, alice.address, bob.address, amount
            )

    @pytest.mark.asyncio
    async def test_supply_conserved_across_transfers(self, chain, weth, alice, bob, encrypt, reveal):
        await chain.send(alice.address, weth.mint, alice.address, 10)
        await chain.send(bob.address, weth.mint, bob.address, 5)
        for value in (3, 20, 1):
            handle, proof = await encrypt(value, weth.address, alice.address)
            await chain.send(alice.address, weth.confidential_transfer_input, bob.address, handle, proof)

        supply = await reveal(await chain.call(weth.confidential_total_supply))
        alice_balance = await reveal(weth, alice.address)
        bob_balance = await reveal(weth, bob.address)
        assert supply == 15
        assert alice_balance + bob_balance == supply
        assert alice_balance == 6
