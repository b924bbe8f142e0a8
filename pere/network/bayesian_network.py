"""
Bayesian Network
================

A directed acyclic graph of discrete variables with conditional probability
tables and an optional observed state per node.

Nodes live in an arena keyed by id; parent/child relations are id lists
owned by the network, never object references between nodes. Cycle checks
and ordering work purely over ids.

Invariants:
- The parent/child relation is always a DAG. Edits that would close a cycle
  are rejected and leave the network unchanged.
- The topological order is recomputed on every node/edge change.
- `revision` increases on every structural or CPT change, so cached
  inference results can detect staleness.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from ..errors import CyclicEdgeError, InvalidEdge, UnknownNodeError
from ..parameters import Parameters
from ..types import Evidence, normalize
from .extraction import CandidateExtractor, HeuristicExtractor


logger = logging.getLogger(__name__)

TOPIC_STATES = ('true', 'false')
SOURCE_STATES = ('reliable', 'unreliable')


# =============================================================================
# NODES AND TABLES
# =============================================================================

@dataclass
class BayesianNode:
    """
    Discrete random variable.

    `probabilities` is the unconditional distribution, used as the prior when
    the node has no CPT (or a CPT row is missing).
    """
    id: str
    states: List[str]
    probabilities: Optional[Dict[str, float]] = None
    name: str = ""
    evidence: Optional[str] = None

    def __post_init__(self):
        self.states = list(self.states)
        if not self.states:
            raise ValueError(f"node {self.id!r} needs at least one state")
        if len(set(self.states)) != len(self.states):
            raise ValueError(f"node {self.id!r} has duplicate states")
        if not self.name:
            self.name = self.id
        given = self.probabilities or {}
        unknown = set(given) - set(self.states)
        if unknown:
            raise ValueError(f"node {self.id!r}: probabilities for unknown states {sorted(unknown)}")
        if given:
            self.probabilities = normalize({s: given.get(s, 0.0) for s in self.states})
        else:
            self.probabilities = {s: 1.0 / len(self.states) for s in self.states}

    @property
    def cardinality(self) -> int:
        return len(self.states)


@dataclass
class ConditionalProbabilityTable:
    """
    P(node | parents) keyed by a canonical string of parent assignments.

    Keys are `parent:state` pairs sorted by parent id and joined with `|`,
    so the same assignment always maps to the same row.
    """
    node_id: str
    rows: Dict[str, Dict[str, float]] = field(default_factory=dict)

    @staticmethod
    def condition_key(parent_states: Mapping[str, str]) -> str:
        return "|".join(f"{p}:{s}" for p, s in sorted(parent_states.items()))

    def set_row(self, parent_states: Mapping[str, str], distribution: Mapping[str, float]) -> None:
        self.rows[self.condition_key(parent_states)] = normalize(distribution)

    def get_row(self, parent_states: Mapping[str, str]) -> Optional[Dict[str, float]]:
        return self.rows.get(self.condition_key(parent_states))

    @classmethod
    def from_rows(
        cls,
        node_id: str,
        rows: Iterable[tuple],
    ) -> "ConditionalProbabilityTable":
        """Build from (parent_states, distribution) pairs."""
        cpt = cls(node_id=node_id)
        for parent_states, distribution in rows:
            cpt.set_row(parent_states, distribution)
        return cpt


# =============================================================================
# NETWORK
# =============================================================================

class BayesianNetwork:
    """
    Arena of BayesianNodes with CPTs, evidence and a cached topological order.

    Mutation (add_node, add_edge, set_cpt, set_evidence) must not interleave
    with inference on the same instance; build first, then query.
    """

    def __init__(
        self,
        params: Parameters = None,
        extractor: Optional[CandidateExtractor] = None,
    ):
        self.params = params or Parameters()
        self.extractor = extractor or HeuristicExtractor(
            min_length=self.params.min_candidate_length,
            frequent_min_length=self.params.frequent_word_min_length,
            long_min_length=self.params.long_word_min_length,
        )
        self._nodes: Dict[str, BayesianNode] = {}
        self._parents: Dict[str, List[str]] = {}
        self._children: Dict[str, List[str]] = {}
        self._cpts: Dict[str, ConditionalProbabilityTable] = {}
        self._order: List[str] = []
        self._revision = 0

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def nodes(self) -> Dict[str, BayesianNode]:
        return dict(self._nodes)

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def topological_order(self) -> List[str]:
        return list(self._order)

    @property
    def evidence(self) -> Dict[str, str]:
        """Currently observed states."""
        return {nid: n.evidence for nid, n in self._nodes.items() if n.evidence is not None}

    @property
    def edge_count(self) -> int:
        return sum(len(c) for c in self._children.values())

    def get_node(self, node_id: str) -> Optional[BayesianNode]:
        return self._nodes.get(node_id)

    def node(self, node_id: str) -> BayesianNode:
        """Node by id, raising UnknownNodeError if absent."""
        try:
            return self._nodes[node_id]
        except KeyError:
            raise UnknownNodeError(f"no node {node_id!r} in network") from None

    def parents(self, node_id: str) -> List[str]:
        return list(self._parents.get(node_id, ()))

    def children(self, node_id: str) -> List[str]:
        return list(self._children.get(node_id, ()))

    def get_cpt(self, node_id: str) -> Optional[ConditionalProbabilityTable]:
        return self._cpts.get(node_id)

    def has_edge(self, parent_id: str, child_id: str) -> bool:
        return child_id in self._children.get(parent_id, ())

    def markov_blanket(self, node_id: str) -> Set[str]:
        """Parents, children, and the children's other parents."""
        self.node(node_id)
        blanket = set(self._parents[node_id]) | set(self._children[node_id])
        for child in self._children[node_id]:
            blanket.update(self._parents[child])
        blanket.discard(node_id)
        return blanket

    def ancestors(self, node_ids: Iterable[str]) -> Set[str]:
        """The given nodes plus everything with a directed path into them."""
        closure: Set[str] = set()
        stack = [n for n in node_ids if n in self._nodes]
        while stack:
            current = stack.pop()
            if current in closure:
                continue
            closure.add(current)
            stack.extend(self._parents[current])
        return closure

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def add_node(self, node: BayesianNode) -> BayesianNode:
        """
        Add a node, or replace the data of an existing node with the same id.

        Replacing keeps the node's edges. Its CPT is dropped if the state
        space changed.
        """
        existing = self._nodes.get(node.id)
        if existing is not None:
            logger.debug("Replacing node %s", node.id)
            if existing.states != node.states:
                self._cpts.pop(node.id, None)
        else:
            self._parents[node.id] = []
            self._children[node.id] = []

        self._nodes[node.id] = node
        self._structure_changed()
        return node

    def add_edge(self, parent_id: str, child_id: str) -> bool:
        """
        Add a directed edge parent -> child.

        Returns False if the edge already exists.

        Raises:
            InvalidEdge: either endpoint is missing, or parent == child
            CyclicEdgeError: the edge would create a directed cycle
        """
        missing = [n for n in (parent_id, child_id) if n not in self._nodes]
        if missing:
            raise InvalidEdge(f"edge {parent_id!r} -> {child_id!r} references missing node(s) {missing}")
        if parent_id == child_id:
            raise InvalidEdge(f"self loop on {parent_id!r}")
        if self.has_edge(parent_id, child_id):
            return False
        if self.would_create_cycle(parent_id, child_id):
            raise CyclicEdgeError(f"edge {parent_id!r} -> {child_id!r} would create a cycle")

        self._children[parent_id].append(child_id)
        self._parents[child_id].append(parent_id)
        self._structure_changed()
        return True

    def would_create_cycle(self, parent_id: str, child_id: str) -> bool:
        """Temporarily add the edge, test, and revert."""
        if parent_id == child_id:
            return True
        if self.has_edge(parent_id, child_id):
            return False

        self._children[parent_id].append(child_id)
        self._parents[child_id].append(parent_id)
        try:
            # Any new cycle must pass through the added edge
            return self._reaches(child_id, parent_id)
        finally:
            self._children[parent_id].pop()
            self._parents[child_id].pop()

    def _reaches(self, start: str, goal: str) -> bool:
        seen: Set[str] = set()
        stack = [start]
        while stack:
            current = stack.pop()
            if current == goal:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._children[current])
        return False

    def set_cpt(
        self,
        node_id: str,
        cpt: ConditionalProbabilityTable,
    ) -> None:
        """Attach a CPT. Rows are renormalized over the node's states."""
        node = self.node(node_id)
        checked = ConditionalProbabilityTable(node_id=node_id)
        for key, distribution in cpt.rows.items():
            unknown = set(distribution) - set(node.states)
            if unknown:
                raise ValueError(f"CPT for {node_id!r} names unknown states {sorted(unknown)}")
            checked.rows[key] = normalize({s: distribution.get(s, 0.0) for s in node.states})
        self._cpts[node_id] = checked
        self._revision += 1

    def set_evidence(self, node_id: str, state: str) -> None:
        node = self.node(node_id)
        if state not in node.states:
            raise ValueError(f"{state!r} is not a state of {node_id!r} ({node.states})")
        node.evidence = state

    def clear_evidence(self, node_id: Optional[str] = None) -> None:
        """Clear one node's observation, or all of them."""
        if node_id is not None:
            self.node(node_id).evidence = None
            return
        for node in self._nodes.values():
            node.evidence = None

    def _structure_changed(self) -> None:
        self._order = self._compute_topological_order()
        self._revision += 1

    # -------------------------------------------------------------------------
    # Probabilities
    # -------------------------------------------------------------------------

    def get_conditional_probability(
        self,
        node_id: str,
        state: str,
        parent_states: Optional[Mapping[str, str]] = None,
    ) -> float:
        """
        P(node = state | parents = parent_states).

        Only the node's own parents are read from parent_states. Falls back to
        the node's prior when there is no CPT or no row for the assignment.
        """
        node = self.node(node_id)
        cpt = self._cpts.get(node_id)
        if cpt is not None:
            relevant = {
                p: parent_states[p]
                for p in self._parents[node_id]
                if parent_states and p in parent_states
            }
            row = cpt.get_row(relevant)
            if row is not None:
                return row.get(state, 0.0)
        return node.probabilities.get(state, 0.0)

    def distribution_given(
        self,
        node_id: str,
        parent_states: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, float]:
        node = self.node(node_id)
        return {s: self.get_conditional_probability(node_id, s, parent_states) for s in node.states}

    # -------------------------------------------------------------------------
    # Structure
    # -------------------------------------------------------------------------

    def has_cycles(self) -> bool:
        """Depth-first search with an explicit recursion stack."""
        visited: Set[str] = set()
        on_stack: Set[str] = set()

        for root in self._nodes:
            if root in visited:
                continue
            stack = [(root, iter(self._children[root]))]
            visited.add(root)
            on_stack.add(root)
            while stack:
                current, children = stack[-1]
                advanced = False
                for child in children:
                    if child in on_stack:
                        return True
                    if child not in visited:
                        visited.add(child)
                        on_stack.add(child)
                        stack.append((child, iter(self._children[child])))
                        advanced = True
                        break
                if not advanced:
                    on_stack.discard(current)
                    stack.pop()
        return False

    def _compute_topological_order(self) -> List[str]:
        """Parents before children; insertion order breaks ties."""
        order: List[str] = []
        placed: Set[str] = set()
        for root in self._nodes:
            if root in placed:
                continue
            stack = [(root, False)]
            while stack:
                current, expanded = stack.pop()
                if current in placed:
                    continue
                if expanded:
                    placed.add(current)
                    order.append(current)
                    continue
                stack.append((current, True))
                for parent in reversed(self._parents[current]):
                    if parent not in placed:
                        stack.append((parent, False))
        return order

    def depth(self) -> int:
        """Number of nodes on the longest directed path."""
        depth: Dict[str, int] = {}
        for node_id in self._order:
            depth[node_id] = 1 + max((depth[p] for p in self._parents[node_id]), default=0)
        return max(depth.values(), default=0)

    def get_statistics(self) -> Dict[str, float]:
        n = len(self._nodes)
        edges = self.edge_count
        return {
            'node_count': n,
            'edge_count': edges,
            'max_depth': self.depth(),
            'avg_connectivity': (2 * edges / n) if n else 0.0,
            'cpt_count': len(self._cpts),
        }

    def copy(self) -> "BayesianNetwork":
        """Independent deep copy sharing only params and extractor."""
        clone = BayesianNetwork(params=self.params, extractor=self.extractor)
        clone._nodes = copy.deepcopy(self._nodes)
        clone._parents = {k: list(v) for k, v in self._parents.items()}
        clone._children = {k: list(v) for k, v in self._children.items()}
        clone._cpts = copy.deepcopy(self._cpts)
        clone._order = list(self._order)
        clone._revision = self._revision
        return clone

    # -------------------------------------------------------------------------
    # Construction from evidence
    # -------------------------------------------------------------------------

    def construct_from_evidence(self, evidence_set: Sequence[Evidence]) -> Dict[str, int]:
        """
        Heuristically build nodes and edges from a batch of evidence.

        One boolean node per topic/entity candidate, one reliability node per
        source, and an edge between candidate pairs that share a source.
        Edges that would close a cycle are skipped. Existing nodes are kept.
        """
        candidate_sources: Dict[str, Set[str]] = {}
        sources: List[str] = []

        for ev in evidence_set:
            if ev.source not in sources:
                sources.append(ev.source)
            candidates = []
            if ev.topic:
                candidates.append(ev.topic)
            candidates.extend(self.extractor.extract_candidates(ev.content))
            topic_terms = getattr(self.extractor, 'topic_candidates', None)
            if topic_terms is not None:
                candidates.extend(topic_terms(ev.topic))
            for candidate in candidates:
                candidate_sources.setdefault(candidate, set()).add(ev.source)

        nodes_added = 0
        prior = self.params.topic_prior
        for candidate in candidate_sources:
            if candidate not in self._nodes:
                self._add_quietly(BayesianNode(
                    id=candidate,
                    states=list(TOPIC_STATES),
                    probabilities={'true': prior, 'false': 1.0 - prior},
                ))
                nodes_added += 1

        reliable = self.params.source_prior_reliable
        for source in sources:
            if source not in self._nodes:
                self._add_quietly(BayesianNode(
                    id=source,
                    states=list(SOURCE_STATES),
                    probabilities={'reliable': reliable, 'unreliable': 1.0 - reliable},
                ))
                nodes_added += 1
        self._structure_changed()

        edges_added = 0
        edges_skipped = 0
        topics = list(candidate_sources)
        for i, parent in enumerate(topics):
            for child in topics[i + 1:]:
                if not candidate_sources[parent] & candidate_sources[child]:
                    continue
                if self.has_edge(parent, child):
                    continue
                if self.would_create_cycle(parent, child):
                    edges_skipped += 1
                    logger.debug("Skipping edge %s -> %s: would create cycle", parent, child)
                    continue
                self._children[parent].append(child)
                self._parents[child].append(parent)
                edges_added += 1
        if edges_added:
            self._structure_changed()

        logger.info(
            "Constructed network from %d evidence: +%d nodes, +%d edges (%d skipped)",
            len(evidence_set), nodes_added, edges_added, edges_skipped,
        )
        return {
            'nodes_added': nodes_added,
            'edges_added': edges_added,
            'edges_skipped': edges_skipped,
        }

    def _add_quietly(self, node: BayesianNode) -> None:
        # Bulk insert; caller recomputes the order once afterwards
        self._nodes[node.id] = node
        self._parents[node.id] = []
        self._children[node.id] = []
