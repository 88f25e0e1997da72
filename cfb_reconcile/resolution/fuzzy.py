from typing import Callable, Dict, Generic, List, NamedTuple, Sequence, TypeVar

from rapidfuzz import fuzz, process

T = TypeVar("T")

_TIE_EPSILON = 1e-9


class FuzzyKey(NamedTuple):
    name: str
    getter: Callable  # item -> str
    weight: float


class FuzzyHit(NamedTuple):
    index: int
    distance: float  # 0.0 identical, 1.0 unrelated
    key: str


class FuzzyIndex(Generic[T]):
    """Weighted multi-key approximate name index.

    Each key scores the query with `fuzz.ratio`; the per-key distance
    `1 - ratio/100` is raised to the key's normalized weight, so a low-weight
    key (acronyms) has to be near exact to win. An item's distance is its
    best key's distance.
    """

    def __init__(self, items: Sequence[T], keys: Sequence[FuzzyKey]):
        total = sum(k.weight for k in keys) or 1.0
        self.items: List[T] = list(items)
        self._keys = [k._replace(weight=k.weight / total) for k in keys]
        self._choices: Dict[str, List[str]] = {
            k.name: [k.getter(item) or "" for item in self.items] for k in self._keys
        }

    def __len__(self) -> int:
        return len(self.items)

    def search(self, query: str, max_distance: float) -> List[FuzzyHit]:
        """Hits strictly under `max_distance`, best first, one per item."""
        if not query or not self.items:
            return []
        best: Dict[int, FuzzyHit] = {}
        for key in self._keys:
            # ratio needed for (1 - ratio/100) ** weight < max_distance
            min_ratio = 100.0 * (1.0 - max_distance ** (1.0 / key.weight))
            matches = process.extract(
                query,
                self._choices[key.name],
                scorer=fuzz.ratio,
                score_cutoff=max(min_ratio, 0.0),
                limit=None,
            )
            for choice, score, index in matches:
                if not choice:
                    continue
                distance = (1.0 - score / 100.0) ** key.weight
                if distance >= max_distance:
                    continue
                current = best.get(index)
                if current is None or distance < current.distance:
                    best[index] = FuzzyHit(index, distance, key.name)
        return sorted(best.values(), key=lambda h: (h.distance, h.index))

    def best(self, queries: Sequence[str], max_distance: float) -> List[FuzzyHit]:
        """Merged hits over several queries, keeping each item's best distance."""
        merged: Dict[int, FuzzyHit] = {}
        for query in dict.fromkeys(q for q in queries if q):
            for hit in self.search(query, max_distance):
                current = merged.get(hit.index)
                if current is None or hit.distance < current.distance:
                    merged[hit.index] = hit
        return sorted(merged.values(), key=lambda h: (h.distance, h.index))


def is_ambiguous(hits: Sequence[FuzzyHit]) -> bool:
    """True when the two best hits are equally good."""
    return len(hits) > 1 and abs(hits[0].distance - hits[1].distance) <= _TIE_EPSILON
