"""
Compare each implementation's call results and final state digest against
the reference output for a vector.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

# Result keys that must always match; ``value`` is compared only when the
# reference recorded one.
_STRICT_KEYS = ("ok", "error")


@dataclass
class Divergence:
    """One field where an implementation disagrees with the reference."""
    field: str
    expected: Any
    actual: Any
    client: str
    reference_client: str
    vector_name: str
    details: Optional[str] = None


@dataclass
class ComparisonResult:
    divergences: List[Divergence] = field(default_factory=list)
    clients_compared: List[str] = field(default_factory=list)

    @property
    def has_divergences(self) -> bool:
        return bool(self.divergences)

    @property
    def success(self) -> bool:
        return not self.divergences


class ResultComparator:
    """Checks run outputs (``{"results": [...], "state_digest": str}``)."""

    def __init__(self, reference_client: str = "expected"):
        self.reference_client = reference_client

    def compare_results(
        self,
        results: Dict[str, Dict[str, Any]],
        vector_name: str,
    ) -> ComparisonResult:
        """Compare every entry of ``results`` with the reference entry."""
        if self.reference_client not in results:
            raise ValueError(
                f"Reference client '{self.reference_client}' not in results"
            )
        reference = results[self.reference_client]

        comparison = ComparisonResult(clients_compared=list(results))
        for client, output in results.items():
            if client == self.reference_client:
                continue
            for name, expected, actual, details in self._mismatches(reference, output):
                comparison.divergences.append(Divergence(
                    field=name,
                    expected=expected,
                    actual=actual,
                    client=client,
                    reference_client=self.reference_client,
                    vector_name=vector_name,
                    details=details,
                ))
        return comparison

    def _mismatches(
        self, reference: Dict[str, Any], output: Dict[str, Any]
    ) -> Iterator[tuple]:
        want = reference.get("results", [])
        got = output.get("results", [])
        if len(want) != len(got):
            yield "results.length", len(want), len(got), "Number of call results differs"

        for i, (w, g) in enumerate(zip(want, got)):
            for key in _STRICT_KEYS:
                if w.get(key) != g.get(key):
                    yield f"results[{i}].{key}", w.get(key), g.get(key), None
            if w.get("value") is not None and w["value"] != g.get("value"):
                yield f"results[{i}].value", w["value"], g.get("value"), None

        digest = reference.get("state_digest")
        if digest and digest != output.get("state_digest"):
            yield (
                "state_digest",
                digest,
                output.get("state_digest"),
                "State digest mismatch after execution",
            )
