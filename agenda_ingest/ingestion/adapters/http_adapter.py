"""
HTTP Listing Adapter.

Generic adapter for public event listing pages. It reads schema.org ``Event``
objects from JSON-LD blocks and falls back to event cards located with the
CSS markers configured for the source. Site-specific scraping is out of
scope; this adapter only covers pages that publish structured data or the
common card layout.
"""

import json
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from agenda_ingest.ingestion.errors import AdapterError
from agenda_ingest.ingestion.resilience import classify_http_error
from agenda_ingest.schemas.event import RawCandidate

from .base_adapter import AdapterConfig, BaseSourceAdapter, ProbeResult, ScrapeFilters

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept-Language": "pt-BR,pt;q=0.9,en;q=0.8",
}

EVENT_TYPES = {"Event", "MusicEvent", "TheaterEvent", "SportsEvent", "EducationEvent",
               "BusinessEvent", "Festival", "SocialEvent", "ComedyEvent", "DanceEvent"}


class HttpListingAdapter(BaseSourceAdapter):
    """
    Adapter for HTML listing pages.

    - GET the listing page with httpx (blocking client; the orchestrator runs
      it on a worker thread)
    - parse with BeautifulSoup + lxml
    - JSON-LD events first, then marker-based cards
    """

    def __init__(self, config: AdapterConfig, client: Optional[httpx.Client] = None):
        super().__init__(config)
        self._client = client

    def _validate_config(self) -> None:
        if not self.config.base_url:
            raise ValueError(f"{self.source_id}: http_listing adapter requires base_url")

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                headers=DEFAULT_HEADERS,
                timeout=self.config.request_timeout,
                follow_redirects=True,
            )
        return self._client

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _get(self, url: str) -> httpx.Response:
        try:
            response = self._get_client().get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise classify_http_error(e, self.source_id) from e
        return response

    def scrape_events(self, region: str, filters: ScrapeFilters) -> Iterable[RawCandidate]:
        """Yield candidates from the listing page, at most ``filters.max_events``."""
        response = self._get(self.config.listing_url)
        soup = BeautifulSoup(response.text, "lxml")

        seen: set[str] = set()
        produced = 0
        for candidate in self._iter_candidates(soup, str(response.url)):
            if candidate.source_url in seen:
                continue
            if filters.require_images and not candidate.image_url:
                continue
            seen.add(candidate.source_url)
            yield candidate
            produced += 1
            if produced >= filters.max_events:
                break

        self.logger.info(f"{self.source_id}: {produced} candidates (region={region})")

    def _iter_candidates(self, soup: BeautifulSoup, page_url: str) -> Iterator[RawCandidate]:
        yield from self._from_json_ld(soup, page_url)
        yield from self._from_cards(soup, page_url)

    # ------------------------------------------------------------------
    # JSON-LD
    # ------------------------------------------------------------------

    def _from_json_ld(self, soup: BeautifulSoup, page_url: str) -> Iterator[RawCandidate]:
        for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
            try:
                data = json.loads(script.string or "")
            except json.JSONDecodeError:
                self.logger.debug(f"{self.source_id}: skipping malformed JSON-LD block")
                continue
            for item in _flatten_json_ld(data):
                try:
                    candidate = self._candidate_from_json_ld(item, page_url)
                except ValidationError as e:
                    self.logger.warning(f"{self.source_id}: skipping invalid JSON-LD event: {e}")
                    continue
                if candidate is not None:
                    yield candidate

    def _candidate_from_json_ld(
        self, item: Dict[str, Any], page_url: str
    ) -> Optional[RawCandidate]:
        item_type = item.get("@type")
        types = set(item_type) if isinstance(item_type, list) else {item_type}
        if not types & EVENT_TYPES:
            return None
        title = item.get("name")
        url = item.get("url")
        if not title or not url:
            return None

        location = item.get("location") or {}
        if isinstance(location, list):
            location = location[0] if location else {}
        address = location.get("address") if isinstance(location, dict) else None
        locality = region = None
        if isinstance(address, dict):
            locality = address.get("addressLocality")
            region = address.get("addressRegion")
        raw_location = ", ".join(
            p for p in (
                location.get("name") if isinstance(location, dict) else None,
                locality,
                region,
            ) if p
        )

        image = item.get("image")
        if isinstance(image, list):
            image = image[0] if image else None
        if isinstance(image, dict):
            image = image.get("url")

        offers = item.get("offers")
        if isinstance(offers, list):
            offers = offers[0] if offers else None
        raw_price = None
        if isinstance(offers, dict) and offers.get("price") is not None:
            raw_price = f"R$ {offers.get('price')}"

        organizer = item.get("organizer")
        if isinstance(organizer, dict):
            organizer = organizer.get("name")

        return RawCandidate(
            title=str(title),
            description=item.get("description"),
            raw_date=item.get("startDate"),
            raw_location=raw_location or None,
            image_url=image,
            source_id=self.source_id,
            source_url=urljoin(page_url, url),
            region=", ".join(p for p in (locality, region) if p) or None,
            raw_price=raw_price,
            organizer=organizer if isinstance(organizer, str) else None,
        )

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    def _from_cards(self, soup: BeautifulSoup, page_url: str) -> Iterator[RawCandidate]:
        markers = self.config.markers
        card_selector = markers.get("event_card")
        if not card_selector:
            return
        for card in soup.select(card_selector):
            try:
                candidate = self._candidate_from_card(card, page_url)
            except ValidationError as e:
                self.logger.warning(f"{self.source_id}: skipping invalid event card: {e}")
                continue
            if candidate is not None:
                yield candidate

    def _candidate_from_card(self, card: Tag, page_url: str) -> Optional[RawCandidate]:
        markers = self.config.markers
        title_el = card.select_one(markers["title"]) if markers.get("title") else None
        title = (title_el.get_text(" ", strip=True) if title_el else "") or card.get("data-title")
        link = card if card.name == "a" else card.find("a", href=True)
        href = link.get("href") if link is not None else None
        if not title or not href:
            return None

        date_el = card.select_one(markers["date"]) if markers.get("date") else None
        raw_date = None
        if date_el is not None:
            raw_date = date_el.get("datetime") or date_el.get_text(" ", strip=True)

        img = card.select_one(markers.get("image") or "img")
        image_url = None
        if img is not None:
            image_url = img.get("src") or img.get("data-src")

        location_el = card.select_one(markers["location"]) if markers.get("location") else None

        return RawCandidate(
            title=title,
            description=card.get("data-description"),
            raw_date=raw_date,
            raw_location=location_el.get_text(" ", strip=True) if location_el else None,
            image_url=urljoin(page_url, image_url) if image_url else None,
            source_id=self.source_id,
            source_url=urljoin(page_url, href),
        )

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def probe(self) -> ProbeResult:
        """Fetch the probe page and report which configured markers are present."""
        url = self.config.probe_url or self.config.listing_url
        try:
            response = self._get(url)
        except AdapterError as e:
            return ProbeResult(self.source_id, reachable=False, error=str(e))

        soup = BeautifulSoup(response.text, "lxml")
        found = {
            name: bool(soup.select(selector))
            for name, selector in self.config.markers.items()
        }
        return ProbeResult(
            self.source_id,
            reachable=True,
            markers=found,
            status_code=response.status_code,
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


def _flatten_json_ld(data: Any) -> List[Dict[str, Any]]:
    """JSON-LD may be an object, a list or an @graph/ItemList wrapper."""
    if isinstance(data, list):
        out: List[Dict[str, Any]] = []
        for entry in data:
            out.extend(_flatten_json_ld(entry))
        return out
    if not isinstance(data, dict):
        return []
    if "@graph" in data:
        return _flatten_json_ld(data["@graph"])
    if data.get("@type") == "ItemList":
        items = []
        for element in data.get("itemListElement") or []:
            if isinstance(element, dict):
                items.extend(_flatten_json_ld(element.get("item", element)))
        return items
    return [data]
