"""
Gold price sources.

Each source fetches one reading from an upstream site or API and
normalizes it into an IDR-per-gram PriceSnapshot.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import requests
from bs4 import BeautifulSoup

from goldwatch.database.models import PriceSnapshot
from goldwatch.exceptions import SourceFetchError, ValidationError

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

CANONICAL_CURRENCY = "IDR"
CANONICAL_UNIT = "gram"


@dataclass
class RawQuote:
    """Prices as reported by a source, before unit conversion."""

    price_per_unit: Optional[float]
    buy_price: Optional[float]
    sell_price: Optional[float]
    high_price: Optional[float] = None
    low_price: Optional[float] = None
    currency: str = CANONICAL_CURRENCY
    unit: str = CANONICAL_UNIT


@dataclass
class Conversion:
    """Constants for converting foreign quotes to IDR per gram."""

    usd_to_idr: float = 15500.0
    troy_ounce_grams: float = 31.1034768

    def factor(self, currency: str, unit: str) -> float:
        """Multiplier taking one (currency, unit) price to IDR per gram."""
        if currency == "IDR":
            currency_factor = 1.0
        elif currency == "USD":
            currency_factor = self.usd_to_idr
        else:
            raise ValueError(f"unsupported currency {currency}")

        if unit == "gram":
            unit_factor = 1.0
        elif unit == "troy_ounce":
            unit_factor = 1.0 / self.troy_ounce_grams
        else:
            raise ValueError(f"unsupported unit {unit}")

        return currency_factor * unit_factor


def extract_number(text: Optional[str]) -> Optional[int]:
    """Pull an integer price out of text like 'Rp 1.874.000' or '1,874,000'."""
    if not text:
        return None
    digits = re.sub(r"[^\d]", "", text)
    if not digits:
        return None
    return int(digits)


def normalize_snapshot(
    quote: RawQuote,
    source: str,
    conversion: Conversion,
    now: datetime,
) -> PriceSnapshot:
    """
    Convert a raw quote to a validated canonical snapshot.

    Raises:
        ValidationError: If a required price is missing, non-positive, the
            unit cannot be converted, or buy is below sell
    """
    try:
        factor = conversion.factor(quote.currency, quote.unit)
    except ValueError as e:
        raise ValidationError(source, str(e))

    def convert(value: Optional[float]) -> Optional[float]:
        if value is None:
            return None
        if factor == 1.0:
            return float(value)
        return float(round(value * factor))

    snapshot = PriceSnapshot(
        timestamp=now,
        buy_price=convert(quote.buy_price),
        sell_price=convert(quote.sell_price),
        price_per_gram=convert(quote.price_per_unit),
        high_price=convert(quote.high_price),
        low_price=convert(quote.low_price),
        source=source,
        currency=CANONICAL_CURRENCY,
        unit=CANONICAL_UNIT,
    )

    problems = snapshot.violations()
    if problems:
        raise ValidationError(source, "; ".join(problems))
    return snapshot


class PriceSource(ABC):
    """A single upstream provider of gold prices."""

    name: str = ""

    def __init__(self, conversion: Optional[Conversion] = None):
        self.conversion = conversion or Conversion()

    @abstractmethod
    def fetch_quote(self, timeout: float) -> RawQuote:
        """
        Retrieve one raw reading.

        Raises:
            SourceFetchError: On transport, timeout or parse failure
        """
        pass

    def fetch(self, timeout: float, now: datetime) -> PriceSnapshot:
        """Fetch and normalize one reading."""
        quote = self.fetch_quote(timeout)
        return normalize_snapshot(quote, self.name, self.conversion, now)

    def _get(self, url: str, timeout: float, **kwargs) -> requests.Response:
        """GET with errors mapped to SourceFetchError."""
        try:
            response = requests.get(url, timeout=timeout, **kwargs)
            response.raise_for_status()
            return response
        except requests.exceptions.Timeout:
            raise SourceFetchError(self.name, f"timeout after {timeout}s")
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            raise SourceFetchError(self.name, f"HTTP {status}")
        except requests.exceptions.RequestException as e:
            raise SourceFetchError(self.name, f"transport error: {e}")


class ScrapedSource(PriceSource):
    """Source that parses prices out of an HTML page."""

    def __init__(self, url: str, conversion: Optional[Conversion] = None):
        super().__init__(conversion)
        self.url = url

    def fetch_quote(self, timeout: float) -> RawQuote:
        logger.debug(f"Fetching {self.name} page {self.url}")
        response = self._get(
            self.url,
            timeout,
            headers={
                "User-Agent": USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "id-ID,id;q=0.9,en-US;q=0.8,en;q=0.7",
            },
        )
        try:
            return self.parse(response.text)
        except SourceFetchError:
            raise
        except Exception as e:
            raise SourceFetchError(self.name, f"parse error: {e}")

    @abstractmethod
    def parse(self, html: str) -> RawQuote:
        """Extract a quote from page HTML."""
        pass


class ThirdPartyAPISource(PriceSource):
    """Source that reads a JSON API."""

    def __init__(self, url: str, conversion: Optional[Conversion] = None):
        super().__init__(conversion)
        self.url = url

    def fetch_quote(self, timeout: float) -> RawQuote:
        logger.debug(f"Requesting {self.name} API {self.url}")
        response = self._get(self.url, timeout, headers={"Accept": "application/json"})
        try:
            payload = response.json()
        except ValueError as e:
            raise SourceFetchError(self.name, f"invalid JSON: {e}")
        try:
            return self.parse(payload)
        except SourceFetchError:
            raise
        except Exception as e:
            raise SourceFetchError(self.name, f"parse error: {e}")

    @abstractmethod
    def parse(self, payload: Any) -> RawQuote:
        """Extract a quote from the decoded response."""
        pass


class EmaskuSource(ScrapedSource):
    """
    Emasku price table.

    The first ``table.table`` lists weights per section; the 1 gram row of
    the REGULAR section carries buy (cell 2) and buy-back (cell 4) prices.
    """

    name = "emasku"

    def parse(self, html: str) -> RawQuote:
        soup = BeautifulSoup(html, "html.parser")
        table = soup.find("table", class_="table")
        if table is None:
            raise SourceFetchError(self.name, "price table not found")

        in_regular = False
        for row in table.find_all("tr"):
            row_text = row.get_text(" ", strip=True)
            if "REGULAR" in row_text.upper():
                in_regular = True
                continue
            if not in_regular:
                continue

            cells = row.find_all("td")
            if not cells or cells[0].get_text(strip=True) != "1 gr":
                continue
            if len(cells) < 5:
                raise SourceFetchError(
                    self.name, f"1 gram row has {len(cells)} cells, expected 5"
                )

            buy = extract_number(cells[2].get_text(strip=True))
            sell = extract_number(cells[4].get_text(strip=True))
            return RawQuote(price_per_unit=buy, buy_price=buy, sell_price=sell)

        if not in_regular:
            raise SourceFetchError(self.name, "REGULAR section not found")
        raise SourceFetchError(self.name, "1 gram price not found")


class PegadaianSource(ScrapedSource):
    """
    Pegadaian gold price page.

    Prices sit in ``.items-price`` blocks labelled in Indonesian. "Harga
    Jual" is what the customer pays, "Harga Beli" is the buy-back quote.
    """

    name = "pegadaian"

    # Buy-back is typically ~91.5% of the selling price
    BUYBACK_RATIO = 0.915

    def parse(self, html: str) -> RawQuote:
        soup = BeautifulSoup(html, "html.parser")
        blocks = soup.select(".items-price")
        if not blocks:
            raise SourceFetchError(self.name, "no price blocks found")

        def labelled(label: str) -> Optional[int]:
            for block in blocks:
                if label.lower() in block.get_text(" ", strip=True).lower():
                    value = block.select_one(".data-price")
                    if value is not None:
                        return extract_number(value.get_text(strip=True))
            return None

        first = blocks[0].select_one(".data-price")
        per_gram = extract_number(first.get_text(strip=True)) if first else None
        if per_gram is None:
            raise SourceFetchError(self.name, "price per gram not found")

        buy = labelled("Harga Jual") or per_gram
        sell = labelled("Harga Beli") or round(per_gram * self.BUYBACK_RATIO)

        return RawQuote(
            price_per_unit=per_gram,
            buy_price=buy,
            sell_price=sell,
            high_price=labelled("Tertinggi"),
            low_price=labelled("Terendah"),
        )


class MetalsLiveSource(ThirdPartyAPISource):
    """
    metals.live spot API.

    Reports USD per troy ounce. ``spread_pct`` is the full gap between buy
    and buy-back, split evenly either side of spot.
    """

    name = "metals"

    def __init__(
        self,
        url: str,
        conversion: Optional[Conversion] = None,
        spread_pct: float = 3.0,
    ):
        super().__init__(url, conversion)
        self.spread = spread_pct / 100.0

    def parse(self, payload: Any) -> RawQuote:
        if not isinstance(payload, list):
            raise SourceFetchError(self.name, "unexpected response format")

        spot = None
        for item in payload:
            if isinstance(item, dict) and item.get("gold"):
                spot = float(item["gold"])
                break
        if spot is None:
            raise SourceFetchError(self.name, "gold price not found in response")

        return RawQuote(
            price_per_unit=spot,
            buy_price=spot * (1 + self.spread / 2),
            sell_price=spot * (1 - self.spread / 2),
            currency="USD",
            unit="troy_ounce",
        )


def build_sources(sources_config) -> list[PriceSource]:
    """Instantiate sources in configured priority order."""
    conversion = Conversion(
        usd_to_idr=sources_config.usd_to_idr,
        troy_ounce_grams=sources_config.troy_ounce_grams,
    )
    urls = sources_config.urls
    factories = {
        "emasku": lambda: EmaskuSource(urls.emasku, conversion),
        "pegadaian": lambda: PegadaianSource(urls.pegadaian, conversion),
        "metals": lambda: MetalsLiveSource(
            urls.metals, conversion, spread_pct=sources_config.spread_pct
        ),
    }
    return [factories[name]() for name in sources_config.order]
