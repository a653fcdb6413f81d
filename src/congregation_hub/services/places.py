"""
Address autocomplete and resolution through the Google Maps Places web service.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import requests

from .. import config
from ..core.http_client import HTTPClientPool, get_http_client
from ..core.logger import get_logger
from ..errors import ConfigurationError, ExternalServiceError, ValidationError

logger = get_logger(__name__)

PLACES_BASE_URL = "https://maps.googleapis.com/maps/api/place"
ACCEPTED_STATUSES = ("OK", "ZERO_RESULTS")


@dataclass
class AddressComponents:
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""
    formatted_address: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_member_address(self) -> Dict[str, str]:
        """Shape stored on member and family records."""
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
        }


def parse_address_components(result: Dict[str, Any]) -> AddressComponents:
    """Maps a Place Details ``result`` onto ``AddressComponents``."""
    long_names: Dict[str, str] = {}
    short_names: Dict[str, str] = {}
    for component in result.get("address_components") or []:
        for kind in component.get("types") or []:
            long_names.setdefault(kind, component.get("long_name", ""))
            short_names.setdefault(kind, component.get("short_name", ""))

    street = " ".join(p for p in (long_names.get("street_number"), long_names.get("route")) if p)
    city = long_names.get("locality") or long_names.get("postal_town") or long_names.get("sublocality") or ""
    location = (result.get("geometry") or {}).get("location") or {}

    return AddressComponents(
        street=street,
        city=city,
        state=short_names.get("administrative_area_level_1", ""),
        postal_code=long_names.get("postal_code", ""),
        country=short_names.get("country", ""),
        formatted_address=result.get("formatted_address", ""),
        lat=location.get("lat"),
        lng=location.get("lng"),
    )


class PlacesService:
    def __init__(self, api_key: Optional[str] = None, http_client: Optional[HTTPClientPool] = None, country: Optional[str] = None):
        self.api_key = api_key or config.GOOGLE_MAPS_API_KEY
        self.http_client = http_client or get_http_client()
        self.country = config.PLACES_COUNTRY if country is None else country

    def _call(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ConfigurationError("GOOGLE_MAPS_API_KEY is not configured")
        try:
            response = self.http_client.get(f"{PLACES_BASE_URL}/{endpoint}/json", params={**params, "key": self.api_key})
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ExternalServiceError("Address lookup is unavailable") from e

        status = data.get("status")
        if status not in ACCEPTED_STATUSES:
            logger.error(f"❌ Places {endpoint} returned {status}: {data.get('error_message', '')}")
            raise ExternalServiceError(f"Address lookup failed ({status})")
        return data

    def autocomplete(self, text: str) -> List[Dict[str, str]]:
        text = (text or "").strip()
        if not text:
            return []
        params = {"input": text, "types": "address"}
        if self.country:
            params["components"] = f"country:{self.country}"
        data = self._call("autocomplete", params)
        return [
            {"description": p.get("description", ""), "place_id": p.get("place_id", "")}
            for p in data.get("predictions") or []
        ]

    def resolve(self, place_id: str) -> Optional[AddressComponents]:
        if not place_id:
            raise ValidationError("place_id is required")
        data = self._call(
            "details", {"place_id": place_id, "fields": "address_component,formatted_address,geometry"}
        )
        result = data.get("result")
        if not result:
            return None
        return parse_address_components(result)
