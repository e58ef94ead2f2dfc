# tests/property/engine/test_chain_properties.py
"""Property-based tests for CommandNode chain topology.

- A linear chain of N nodes flattens to exactly those N nodes, root first
- No node appears twice, whatever the link shape
- Closing the loop anywhere is rejected and leaves the graph unchanged
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from pipewright.contracts.enums import StdStream
from pipewright.contracts.errors import ChainCycleError
from pipewright.engine.command import CommandNode
from pipewright.engine.scheduler import Scheduler
from tests.property.settings import SLOW_SETTINGS, STANDARD_SETTINGS

output_streams = st.sampled_from([StdStream.STDOUT, StdStream.STDERR])


def _linear(streams: list[StdStream]) -> list[CommandNode]:
    nodes = [CommandNode(f"cmd{i}") for i in range(len(streams) + 1)]
    for node, downstream, stream in zip(nodes, nodes[1:], streams, strict=True):
        node.set_pipe(stream, downstream)
    return nodes


class TestChainTopology:
    @given(st.lists(output_streams, max_size=30))
    @STANDARD_SETTINGS
    def test_linear_chain_flattens_in_order(self, streams: list[StdStream]) -> None:
        nodes = _linear(streams)
        assert nodes[0].get_chain() == nodes

    @given(st.lists(st.tuples(st.integers(0, 9), st.integers(0, 9), output_streams), max_size=40))
    @STANDARD_SETTINGS
    def test_chain_has_no_duplicates_and_root_first(self, links: list[tuple[int, int, StdStream]]) -> None:
        """Forward-only links never form a cycle; the chain lists each reachable node once."""
        nodes = [CommandNode(f"cmd{i}") for i in range(10)]
        for source, target, stream in links:
            if source < target:
                nodes[source].set_pipe(stream, nodes[target])

        chain = nodes[0].get_chain()

        assert chain[0] is nodes[0]
        assert len({id(node) for node in chain}) == len(chain)

    @given(st.lists(output_streams, min_size=1, max_size=15), st.data())
    @STANDARD_SETTINGS
    def test_back_link_rejected(self, streams: list[StdStream], data: st.DataObject) -> None:
        nodes = _linear(streams)
        source = data.draw(st.integers(1, len(nodes) - 1))
        target = data.draw(st.integers(0, source))
        before = nodes[source].descriptors

        with pytest.raises(ChainCycleError):
            nodes[source].set_pipe(data.draw(output_streams), nodes[target])

        after = nodes[source].descriptors
        assert all(after[s] is before[s] for s in StdStream)

    @given(st.lists(output_streams, max_size=20))
    @SLOW_SETTINGS
    def test_prepare_counts_feeders(self, streams: list[StdStream]) -> None:
        """Every non-root pump in a linear chain has exactly one feeder."""
        nodes = _linear(streams)
        pumps = Scheduler().prepare(nodes[0])

        assert [p.node for p in pumps] == nodes
        assert pumps[0]._feeders == 0
        assert all(p._feeders == 1 for p in pumps[1:])
