"""Pydantic schemas for resolved quotes and the last-known price cache."""

from collections.abc import Mapping
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class PriceQuote(BaseModel):
    """A resolved price for one asset identifier."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    price: Decimal
    currency: str = Field(..., min_length=3, max_length=3)
    change_24h: Decimal | None = Field(None, description="24h percent change, if known")


class PriceCache(BaseModel):
    """Last-known quotes, keyed by crypto provider id and equity symbol."""

    model_config = ConfigDict(frozen=True)

    crypto: dict[str, PriceQuote] = Field(default_factory=dict)
    equities: dict[str, PriceQuote] = Field(default_factory=dict)

    def merged(
        self,
        crypto: Mapping[str, PriceQuote],
        equities: Mapping[str, PriceQuote],
    ) -> "PriceCache":
        """Layer fresh quotes over the cached ones.

        Identifiers missing from the fresh maps keep their cached quote. A
        fresh crypto quote without a 24h change keeps the last known change.
        """
        merged_crypto = dict(self.crypto)
        for identifier, quote in crypto.items():
            previous = merged_crypto.get(identifier)
            if quote.change_24h is None and previous is not None:
                quote = quote.model_copy(update={"change_24h": previous.change_24h})
            merged_crypto[identifier] = quote

        return PriceCache(crypto=merged_crypto, equities={**self.equities, **equities})

    def crypto_prices(self) -> dict[str, Decimal]:
        return {identifier: quote.price for identifier, quote in self.crypto.items()}

    def crypto_changes(self) -> dict[str, Decimal]:
        return {
            identifier: quote.change_24h
            for identifier, quote in self.crypto.items()
            if quote.change_24h is not None
        }
