"""
NNFW NeuralNet

Container of Clusters and Linkers.

    clusters      insertion order; each one input, output, both, or hidden
    linkers       insertion order; endpoints must already be members
    adjacency     from-cluster → outgoing linkers, to-cluster → incoming linkers
    order         caller-supplied update sequence; step() runs it once

The net never infers a topological order.  `check_order` only reports linkers
that would read a source not yet updated in this pass, or write into a
destination that was already updated.
"""

from __future__ import annotations
from typing import Dict, List, Optional, Sequence

from .clusters import Cluster, Updatable
from .errors import MembershipError, UpdateOrderError
from .linkers import Linker
from .log import get_logger

logger = get_logger(__name__)


class NeuralNet:

    def __init__(self, name: str = "net"):
        self.name = name
        self._clusters: List[Cluster] = []
        self._inputs: List[Cluster] = []
        self._outputs: List[Cluster] = []
        self._linkers: List[Linker] = []
        self._out_links: Dict[Cluster, List[Linker]] = {}
        self._in_links: Dict[Cluster, List[Linker]] = {}
        self._by_name: Dict[str, Updatable] = {}
        self._order: List[Updatable] = []

    # ── Membership ────────────────────────────────────────────────────────────

    def find(self, u: Updatable) -> bool:
        return any(u is c for c in self._clusters) or any(u is l for l in self._linkers)

    __contains__ = find

    def _require(self, c: Cluster, what: str):
        if not any(c is x for x in self._clusters):
            raise MembershipError(f"{what}: cluster {c.name!r} is not part of net {self.name!r}")

    def get_by_name(self, name: str) -> Optional[Updatable]:
        return self._by_name.get(name)

    # ── Clusters ──────────────────────────────────────────────────────────────

    def add_cluster(self, c: Cluster, is_input: bool = False, is_output: bool = False) -> bool:
        """Register `c`; a cluster neither input nor output is hidden."""
        if self.find(c):
            logger.warning("cluster %r already in net %r, ignored", c.name, self.name)
            return False
        self._clusters.append(c)
        if is_input:
            self._inputs.append(c)
        if is_output:
            self._outputs.append(c)
        self._by_name[c.name] = c
        return True

    def remove_cluster(self, c: Cluster) -> bool:
        """Remove `c` together with every linker attached to it."""
        if not any(c is x for x in self._clusters):
            return False
        for ln in self.linkers_of(c, out=True) + self.linkers_of(c, out=False):
            self.remove_linker(ln)
        self._clusters = [x for x in self._clusters if x is not c]
        self._inputs = [x for x in self._inputs if x is not c]
        self._outputs = [x for x in self._outputs if x is not c]
        self._out_links.pop(c, None)
        self._in_links.pop(c, None)
        self._order = [u for u in self._order if u is not c]
        if self._by_name.get(c.name) is c:
            del self._by_name[c.name]
        return True

    def mark_as_input(self, c: Cluster):
        self._require(c, "mark_as_input")
        if not any(c is x for x in self._inputs):
            self._inputs.append(c)

    def mark_as_output(self, c: Cluster):
        self._require(c, "mark_as_output")
        if not any(c is x for x in self._outputs):
            self._outputs.append(c)

    def unmark(self, c: Cluster):
        """Make `c` hidden."""
        self._inputs = [x for x in self._inputs if x is not c]
        self._outputs = [x for x in self._outputs if x is not c]

    def unmark_all(self):
        self._inputs = []
        self._outputs = []

    def is_isolated(self, c: Cluster) -> bool:
        return not self._in_links.get(c) and not self._out_links.get(c)

    @property
    def clusters(self) -> List[Cluster]:
        return list(self._clusters)

    @property
    def input_clusters(self) -> List[Cluster]:
        return list(self._inputs)

    @property
    def output_clusters(self) -> List[Cluster]:
        return list(self._outputs)

    @property
    def hidden_clusters(self) -> List[Cluster]:
        return [c for c in self._clusters
                if not any(c is x for x in self._inputs)
                and not any(c is x for x in self._outputs)]

    def is_input(self, c: Cluster) -> bool:
        return any(c is x for x in self._inputs)

    def is_output(self, c: Cluster) -> bool:
        return any(c is x for x in self._outputs)

    # ── Linkers ───────────────────────────────────────────────────────────────

    def add_linker(self, ln: Linker) -> bool:
        if any(ln is x for x in self._linkers):
            logger.warning("linker %r already in net %r, ignored", ln.name, self.name)
            return False
        self._require(ln.from_cluster, f"add_linker({ln.name!r})")
        self._require(ln.to_cluster, f"add_linker({ln.name!r})")
        self._linkers.append(ln)
        self._out_links.setdefault(ln.from_cluster, []).append(ln)
        self._in_links.setdefault(ln.to_cluster, []).append(ln)
        self._by_name[ln.name] = ln
        return True

    def remove_linker(self, ln: Linker) -> bool:
        if not any(ln is x for x in self._linkers):
            return False
        self._linkers = [x for x in self._linkers if x is not ln]
        for table, end in ((self._out_links, ln.from_cluster), (self._in_links, ln.to_cluster)):
            group = [x for x in table.get(end, []) if x is not ln]
            if group:
                table[end] = group
            else:
                table.pop(end, None)
        self._order = [u for u in self._order if u is not ln]
        if self._by_name.get(ln.name) is ln:
            del self._by_name[ln.name]
        return True

    @property
    def linkers(self) -> List[Linker]:
        return list(self._linkers)

    def linkers_of(self, c: Cluster, out: bool = False) -> List[Linker]:
        """Outgoing linkers of `c` if `out`, else incoming ones."""
        table = self._out_links if out else self._in_links
        return list(table.get(c, []))

    # ── Update order ──────────────────────────────────────────────────────────

    def check_order(self, order: Sequence[Updatable]) -> List[str]:
        """
        Problems with `order` as a forward pass.  A linker placed before its
        from-cluster reads last step's outputs; one placed after its
        to-cluster feeds the next step only.
        """
        position = {id(u): i for i, u in enumerate(order)}
        issues = []
        for i, u in enumerate(order):
            if not isinstance(u, Linker):
                continue
            src = position.get(id(u.from_cluster))
            dst = position.get(id(u.to_cluster))
            if src is not None and src > i:
                issues.append(f"linker {u.name!r} runs before its source {u.from_cluster.name!r}")
            if dst is not None and dst < i:
                issues.append(f"linker {u.name!r} runs after its target {u.to_cluster.name!r}")
        return issues

    def set_order(self, order: Sequence[Updatable], strict: bool = False):
        """
        Store the update sequence.  Non-members are dropped.  Order problems
        are logged, or raised as UpdateOrderError when `strict`.
        """
        kept = [u for u in order if self.find(u)]
        if len(kept) != len(order):
            logger.warning("set_order: %d entries not in net %r dropped",
                           len(order) - len(kept), self.name)
        issues = self.check_order(kept)
        if issues and strict:
            raise UpdateOrderError("; ".join(issues))
        for msg in issues:
            logger.warning("set_order: %s", msg)
        self._order = kept

    @property
    def order(self) -> List[Updatable]:
        return list(self._order)

    def step(self):
        """One forward pass: update() every entry of the order, in sequence."""
        for u in self._order:
            u.update()

    def randomize(self, min_value: float, max_value: float):
        for c in self._clusters:
            c.randomize(min_value, max_value)
        for ln in self._linkers:
            ln.randomize(min_value, max_value)

    def __repr__(self):
        return (f"NeuralNet({self.name!r}, clusters={len(self._clusters)}, "
                f"linkers={len(self._linkers)})")

