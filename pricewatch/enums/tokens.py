from enum import Enum


class Token(str, Enum):
    ETH = "ETH"
    MATIC = "MATIC"


# ERC-20 contracts quoted by the price provider (Ethereum mainnet)
TOKEN_ADDRESSES = {
    Token.ETH: "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2",  # WETH
    Token.MATIC: "0x7d1afa7b718fb893db30a3abc0cfc608aacfebb0",
}

# quote-only asset for swap rates, never sampled or alerted on
BTC_ADDRESS = "0x2260fac5e5542a773aa44fbcfedf7c193bc2c599"  # WBTC


def parse_token(value: str) -> Token:
    """Normalize a user-supplied symbol; raises ValueError if unsupported."""
    if isinstance(value, Token):
        return value
    if not isinstance(value, str):
        raise ValueError(f"unsupported token {value!r}")
    return Token(value.strip().upper())
