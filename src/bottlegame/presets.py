from __future__ import annotations

from typing import Optional

from bottlegame.catalog import CATALOG, Catalog
from bottlegame.config import DEFAULT_RNG_SEED
from bottlegame.models import FlavorState, SimulationState

DEFAULT_FORMAT_ID = "medium_1000"


def ensure_catalog_entries(state: SimulationState, catalog: Catalog = CATALOG) -> None:
    """Add per-flavor state for catalog flavors the state does not know yet.

    Shared by the fresh-state factory and the save loader.
    """

    fmt = catalog.bottle_formats.get(state.bottle_format)
    price_mult = fmt.price_multiplier if fmt else 1.0
    for fid, fdef in catalog.flavors.items():
        if fid in state.flavors:
            continue
        state.flavors[fid] = FlavorState(
            unlocked=fdef.unlock_revenue <= 0,
            price=round(fdef.base_price * price_mult, 2),
        )

    if state.bottle_format not in catalog.bottle_formats:
        state.bottle_format = DEFAULT_FORMAT_ID if DEFAULT_FORMAT_ID in catalog.bottle_formats else next(
            iter(catalog.bottle_formats), DEFAULT_FORMAT_ID
        )

    fs = state.flavors.get(state.active_flavor_id)
    if fs is None or not fs.unlocked:
        unlocked = state.unlocked_flavor_ids()
        state.active_flavor_id = unlocked[0] if unlocked else next(iter(catalog.flavors))
        state.flavors[state.active_flavor_id].unlocked = True


def new_game_state(catalog: Catalog = CATALOG, seed: Optional[int] = None) -> SimulationState:
    """Return a runnable default state: one line, one warehouse, the starter flavor."""

    state = SimulationState()
    state.rng_seed = int(seed) if seed is not None else DEFAULT_RNG_SEED
    state.bottle_format = DEFAULT_FORMAT_ID
    ensure_catalog_entries(state, catalog)
    return state
