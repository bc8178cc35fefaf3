"""
Currency Parser.

Parses Brazilian ticket price strings ("R$ 45,00", "A partir de R$ 1.250,50",
"Gratuito") into PriceInfo. No conversion: prices stay in their currency.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from agenda_ingest.ingestion.normalization.text_utils import fold_accents
from agenda_ingest.schemas.event import PriceInfo


class CurrencyParser:
    """
    Parse price strings and identify currency.

    Does NOT convert currencies - keeps original values.
    """

    SYMBOL_TO_CODE = {
        "R$": "BRL",
        "US$": "USD",
        "€": "EUR",
    }

    FREE_INDICATORS = (
        "gratis",
        "gratuito",
        "gratuita",
        "entrada franca",
        "entrada livre",
        "free",
    )

    # "1.234,56" / "45,00" / "45" / "45.90"
    _NUMBER = re.compile(r"\d{1,3}(?:\.\d{3})+(?:,\d{1,2})?|\d+(?:[.,]\d{1,2})?")

    @classmethod
    def parse_price(cls, price_str: str | None) -> PriceInfo | None:
        """
        Parse a price string into PriceInfo.

        - "Gratuito" -> PriceInfo(is_free=True)
        - "R$ 45,00" -> PriceInfo(minimum_price=45.00)
        - "R$ 30 a R$ 60" -> PriceInfo(minimum_price=30, maximum_price=60)
        - "" / no numbers -> None

        Args:
            price_str: Raw price text

        Returns:
            PriceInfo or None when no price could be read
        """
        if not price_str or not price_str.strip():
            return None

        if cls.is_free(price_str):
            return PriceInfo(is_free=True, minimum_price=Decimal("0"))

        currency = cls.detect_currency(price_str) or "BRL"
        numbers = cls._extract_numbers(price_str)
        if not numbers:
            return None

        if len(numbers) == 1:
            return PriceInfo(minimum_price=numbers[0], currency=currency)
        return PriceInfo(
            minimum_price=min(numbers), maximum_price=max(numbers), currency=currency
        )

    @classmethod
    def find_price(cls, text: str | None) -> PriceInfo | None:
        """Look for a price mention ("R$ 20", "entrada gratuita") inside free text."""
        if not text:
            return None
        if cls.is_free(text):
            return PriceInfo(is_free=True, minimum_price=Decimal("0"))
        m = re.search(r"R\$\s*(" + cls._NUMBER.pattern + r")", text)
        if not m:
            return None
        return cls.parse_price(m.group(0))

    @classmethod
    def detect_currency(cls, price_str: str) -> str:
        """ISO currency code for the symbol in ``price_str``, or ""."""
        for symbol, code in cls.SYMBOL_TO_CODE.items():
            if symbol in price_str:
                return code
        if re.search(r"\bBRL\b|\breais\b", price_str, re.IGNORECASE):
            return "BRL"
        return ""

    @classmethod
    def is_free(cls, price_str: str) -> bool:
        folded = fold_accents(price_str)
        return any(
            re.search(rf"(?<!\w){re.escape(ind)}(?!\w)", folded)
            for ind in cls.FREE_INDICATORS
        )

    @classmethod
    def _extract_numbers(cls, price_str: str) -> list[Decimal]:
        """
        Extract numeric values using the Brazilian format.

        "1.234,56" -> 1234.56, "45,00" -> 45.00, "45.90" -> 45.90
        """
        numbers = []
        for match in cls._NUMBER.findall(price_str):
            if "," in match:
                normalized = match.replace(".", "").replace(",", ".")
            elif re.fullmatch(r"\d{1,3}(?:\.\d{3})+", match):
                normalized = match.replace(".", "")
            else:
                normalized = match
            try:
                numbers.append(Decimal(normalized))
            except InvalidOperation:
                continue
        return numbers

    @classmethod
    def format_price(cls, amount: Decimal | None) -> str:
        """Format an amount as "R$ 1.234,56"; None reads as "Gratuito"."""
        if amount is None or amount == 0:
            return "Gratuito"
        whole = f"{amount:,.2f}"
        return "R$ " + whole.replace(",", "X").replace(".", ",").replace("X", ".")
