import asyncio
from fractions import Fraction
from types import SimpleNamespace

from market_relay.rpc import PoolStateReader, Slot0, sqrt_price_to_price


def test_price_of_unit_sqrt_price():
    assert sqrt_price_to_price(2 ** 96) == 1.0


def test_price_squares_exactly_before_dividing():
    # near the uint160 maximum the square needs ~320 bits
    sqrt_price = 1461446703485210103287273052203988822378723970341
    expected = float(Fraction(sqrt_price * sqrt_price, 2 ** 192))
    assert sqrt_price_to_price(sqrt_price) == expected


def test_slot0_price_property():
    sqrt_price = 1_771_595_571_142_957_166_518_320_255_467_520
    assert Slot0(sqrt_price, 200_000).price == sqrt_price_to_price(sqrt_price)
    assert Slot0(sqrt_price, 200_000).price > 0


def test_read_slot0_uses_checksum_address():
    reader = PoolStateReader("http://localhost:8545")
    seen = {}

    async def call():
        return [2 ** 96, -201_234, 1, 2, 3, 0, True]

    def contract(address, abi):
        seen["address"] = address
        seen["abi"] = abi
        return SimpleNamespace(functions=SimpleNamespace(slot0=lambda: SimpleNamespace(call=call)))

    reader.w3 = SimpleNamespace(eth=SimpleNamespace(contract=contract))
    slot0 = asyncio.run(reader.read_slot0("0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640"))
    assert slot0 == Slot0(sqrt_price_x96=2 ** 96, tick=-201_234)
    assert slot0.price == 1.0
    assert seen["address"] == "0x88e6A0c2dDD26FEEb64F039a2c41296FcB3f5640"
    assert seen["abi"][0]["name"] == "slot0"
