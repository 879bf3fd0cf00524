"""
Reference-data client for PokeAPI.

Responses are reduced to the handful of fields the agents read before they
are cached, so a cache entry stays small.
"""

from typing import Any, Callable, Dict, Optional

import httpx

from pokedm.config import settings
from pokedm.errors import CanonFetchError
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)

EFFECT_LIMIT = 200
POKEMON_MOVE_LIMIT = 10

# Cache kind -> PokeAPI resource path
RESOURCES: Dict[str, str] = {
    "pokemon": "pokemon",
    "moves": "move",
    "abilities": "ability",
    "types": "type",
    "species": "pokemon-species",
    "evolution_chains": "evolution-chain",
    "items": "item",
    "locations": "location",
    "generations": "generation",
}


def _name(ref: Optional[Dict[str, Any]]) -> Optional[str]:
    return ref.get("name") if isinstance(ref, dict) else None


def _short_effect(data: Dict[str, Any]) -> str:
    for entry in data.get("effect_entries") or []:
        if _name(entry.get("language")) == "en":
            text = entry.get("short_effect") or entry.get("effect") or ""
            return text[:EFFECT_LIMIT]
    return ""


def _pokemon(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": data.get("id"),
        "name": data.get("name"),
        "height": data.get("height"),
        "weight": data.get("weight"),
        "types": [_name(t.get("type")) for t in data.get("types", [])],
        "stats": [
            {"name": _name(s.get("stat")), "base": s.get("base_stat")}
            for s in data.get("stats", [])
        ],
        "abilities": [
            {"name": _name(a.get("ability")), "is_hidden": a.get("is_hidden", False)}
            for a in data.get("abilities", [])
        ],
        "moves": [_name(m.get("move")) for m in data.get("moves", [])[:POKEMON_MOVE_LIMIT]],
        "species_url": (data.get("species") or {}).get("url"),
    }


def _move(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": data.get("id"),
        "name": data.get("name"),
        "type": _name(data.get("type")),
        "damage_class": _name(data.get("damage_class")),
        "accuracy": data.get("accuracy"),
        "power": data.get("power"),
        "pp": data.get("pp"),
        "priority": data.get("priority"),
        "simple_effect": _short_effect(data),
    }


def _ability(data: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": data.get("id"), "name": data.get("name"), "simple_effect": _short_effect(data)}


def _type(data: Dict[str, Any]) -> Dict[str, Any]:
    relations = data.get("damage_relations") or {}
    return {
        "id": data.get("id"),
        "name": data.get("name"),
        "damage_relations": {
            relation: [_name(t) for t in relations.get(relation) or []]
            for relation in (
                "double_damage_to",
                "half_damage_to",
                "no_damage_to",
                "double_damage_from",
                "half_damage_from",
                "no_damage_from",
            )
        },
    }


def _species(data: Dict[str, Any]) -> Dict[str, Any]:
    flavor = ""
    for entry in data.get("flavor_text_entries") or []:
        if _name(entry.get("language")) == "en":
            flavor = (entry.get("flavor_text") or "").replace("\f", " ")
            break
    generation_url = (data.get("generation") or {}).get("url") or ""
    generation = generation_url.rstrip("/").rsplit("/", 1)[-1]
    return {
        "id": data.get("id"),
        "name": data.get("name"),
        "evolution_chain_url": (data.get("evolution_chain") or {}).get("url"),
        "flavor_text": flavor,
        "generation": int(generation) if generation.isdigit() else None,
        "habitat": _name(data.get("habitat")),
        "color": _name(data.get("color")),
        "shape": _name(data.get("shape")),
    }


def _chain_link(link: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "species_name": _name(link.get("species")),
        "evolves_to": [_chain_link(child) for child in link.get("evolves_to") or []],
        "evolution_details": [
            {
                "trigger": _name(detail.get("trigger")),
                "min_level": detail.get("min_level"),
                "item": _name(detail.get("item")),
                "held_item": _name(detail.get("held_item")),
                "time_of_day": detail.get("time_of_day") or None,
                "known_move_type": _name(detail.get("known_move_type")),
                "location": _name(detail.get("location")),
            }
            for detail in link.get("evolution_details") or []
        ],
    }


def _evolution_chain(data: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": data.get("id"), "chain": _chain_link(data.get("chain") or {})}


def _item(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": data.get("id"),
        "name": data.get("name"),
        "cost": data.get("cost") or 0,
        "category": _name(data.get("category")),
        "simple_effect": _short_effect(data),
    }


def _location(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": data.get("id"),
        "name": data.get("name"),
        "region": _name(data.get("region")),
        "areas": [_name(area) for area in data.get("areas") or []],
    }


def _generation(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": data.get("id"),
        "name": data.get("name"),
        "pokemon_species": [_name(s) for s in data.get("pokemon_species") or []],
    }


SIMPLIFIERS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    "pokemon": _pokemon,
    "moves": _move,
    "abilities": _ability,
    "types": _type,
    "species": _species,
    "evolution_chains": _evolution_chain,
    "items": _item,
    "locations": _location,
    "generations": _generation,
}


class PokeAPIClient:
    """Fetches and simplifies one reference record per call"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.pokeapi_base_url).rstrip("/")
        self.client = client or httpx.AsyncClient(
            timeout=timeout or settings.pokeapi_timeout, follow_redirects=True
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def fetch(self, kind: str, key: str) -> Optional[Dict[str, Any]]:
        """
        Simplified record for ``kind``/``key``.

        Returns:
            The record, or None when the service has no such entry

        Raises:
            CanonFetchError: The service was unreachable or answered with an error
        """
        if kind not in RESOURCES:
            raise ValueError(f"Unknown canon kind {kind!r}")
        url = f"{self.base_url}/{RESOURCES[kind]}/{key.strip().lower()}/"

        try:
            response = await self.client.get(url)
            if response.status_code == 404:
                logger.info(f"No {kind} entry named {key!r}")
                return None
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise CanonFetchError(
                f"Reference lookup failed with HTTP {e.response.status_code}", kind=kind, key=key
            ) from e
        except httpx.HTTPError as e:
            raise CanonFetchError(f"Reference lookup failed: {e}", kind=kind, key=key) from e
        except ValueError as e:
            raise CanonFetchError("Reference service returned invalid JSON", kind=kind, key=key) from e

        logger.debug(f"Fetched {kind}/{key} from {self.base_url}")
        return SIMPLIFIERS[kind](data)

