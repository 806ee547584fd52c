import logging
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Tuple, Union

from pydantic import ValidationError
from yaml import safe_load

from storycraft.core.config import DEFAULT_PLAN_CATALOG_PATH
from storycraft.core.errors import InvalidPlan
from storycraft.schemas.enums import BillingCycle, PlanType
from storycraft.schemas.plan import PlanEntry

logger = logging.getLogger(__name__)

PlanKey = Tuple[PlanType, BillingCycle]


class PlanCatalog:
    """Immutable lookup of purchasable plan/cycle combinations.

    Built once at process start. ``price_of`` is the only source of price and
    duration for orders and activations; caller-supplied amounts are never
    trusted.
    """

    def __init__(self, entries: Iterable[PlanEntry]):
        self._entries: Dict[PlanKey, PlanEntry] = {
            (entry.plan_type, entry.cycle): entry for entry in entries
        }

    @classmethod
    def from_yaml(cls, path: Union[str, Path] = DEFAULT_PLAN_CATALOG_PATH) -> "PlanCatalog":
        path = Path(path)
        logger.info(f"Loading plan catalog from: {path}")
        with open(path, "r") as f:
            raw = safe_load(f) or {}

        entries: List[PlanEntry] = []
        for plan_type, cycles in (raw.get("plans") or {}).items():
            for cycle, values in (cycles or {}).items():
                try:
                    entries.append(PlanEntry(plan_type=plan_type, cycle=cycle, **values))
                except ValidationError as e:
                    raise ValueError(f"Invalid plan catalog entry {plan_type}/{cycle}: {e}") from e
        if not entries:
            raise ValueError(f"Plan catalog at {path} is empty")
        return cls(entries)

    def price_of(self, plan_type: Union[PlanType, str], cycle: Union[BillingCycle, str]) -> PlanEntry:
        """Return the catalog entry for ``(plan_type, cycle)`` or raise InvalidPlan."""
        try:
            key = (PlanType(plan_type), BillingCycle(cycle))
        except ValueError:
            raise InvalidPlan(f"Unknown plan {plan_type!r} / cycle {cycle!r}")
        entry = self._entries.get(key)
        if entry is None:
            raise InvalidPlan(f"Plan {key[0].value} is not sold {key[1].value}")
        return entry

    def entries(self) -> List[PlanEntry]:
        return sorted(self._entries.values(), key=lambda e: (e.plan_type.value, e.duration_days))

    def __len__(self) -> int:
        return len(self._entries)


def amount_in_minor_units(price: Decimal) -> int:
    """Gateway amounts are integers in the currency's minor unit."""
    return int((price * 100).to_integral_value())
