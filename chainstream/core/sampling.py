"""Embedding sampling policy."""

from __future__ import annotations

import random
from typing import Dict, Mapping, Optional

ENTITY_TYPES = ("block", "transaction", "address", "smart_contract", "token")


class SamplingPolicy:
    """Decides per processing event whether an entity gets a summary embedding.

    Each call is an independent Bernoulli draw, so an address refetched
    several times may be sampled more than once.
    """

    def __init__(self, rates: Mapping[str, float], rng: Optional[random.Random] = None):
        for entity_type, rate in rates.items():
            if not 0.0 <= rate <= 1.0:
                raise ValueError(f"Sample rate for {entity_type} must be within [0, 1], got {rate}")
        self.rates: Dict[str, float] = dict(rates)
        self._rng = rng or random.Random()

    @classmethod
    def always(cls) -> "SamplingPolicy":
        return cls({entity_type: 1.0 for entity_type in ENTITY_TYPES})

    @classmethod
    def never(cls) -> "SamplingPolicy":
        return cls({entity_type: 0.0 for entity_type in ENTITY_TYPES})

    def rate_for(self, entity_type: str) -> float:
        return self.rates.get(entity_type, 0.0)

    def should_sample(self, entity_type: str) -> bool:
        rate = self.rate_for(entity_type)
        if rate >= 1.0:
            return True
        if rate <= 0.0:
            return False
        return self._rng.random() < rate
