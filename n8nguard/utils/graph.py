# utils/graph.py
from typing import Dict, Hashable, List, Tuple

import networkx as nx


def find_back_edges(G: nx.DiGraph) -> List[Tuple[Hashable, Hashable]]:
    """
    Depth-first search that returns every back edge (u, v): an edge into a node
    that is still on the DFS stack. Each back edge closes one cycle.
    Roots are visited in insertion order, so results are deterministic.
    Iterative to stay clear of the recursion limit on long chains.
    """
    ON_STACK, DONE = 1, 2
    state: Dict[Hashable, int] = {}
    back: List[Tuple[Hashable, Hashable]] = []

    for root in G.nodes:
        if root in state:
            continue
        state[root] = ON_STACK
        stack = [(root, iter(G.successors(root)))]
        while stack:
            node, it = stack[-1]
            descended = False
            for nxt in it:
                s = state.get(nxt)
                if s is None:
                    state[nxt] = ON_STACK
                    stack.append((nxt, iter(G.successors(nxt))))
                    descended = True
                    break
                if s == ON_STACK:
                    back.append((node, nxt))
            if not descended:
                state[node] = DONE
                stack.pop()
    return back


def longest_chain(G: nx.DiGraph) -> int:
    """Number of nodes on the longest path; 0 for cyclic or empty graphs."""
    if G.number_of_nodes() == 0 or not nx.is_directed_acyclic_graph(G):
        return 0
    return nx.dag_longest_path_length(G) + 1
