"""Test graph construction from request payloads"""

import unittest

from pydantic import ValidationError

from stateflow.domain.models import ApiRequestNode, Graph, TalkNode


class TestGraph(unittest.TestCase):

    def test_missing_ids_are_generated_by_position(self):
        graph = Graph(nodes=[{"type": "talk"}, {"type": "api_request", "endpoint": "https://api.test"}])
        self.assertEqual([n.id for n in graph.nodes], ["node_0", "node_1"])
        self.assertIsInstance(graph.nodes[0], TalkNode)
        self.assertIsInstance(graph.nodes[1], ApiRequestNode)

    def test_generated_id_skips_explicit_ids(self):
        graph = Graph(nodes=[
            {"type": "talk"},
            {"type": "talk", "id": "node_0"},
            {"type": "talk", "id": "node_0_1"},
        ])
        ids = [n.id for n in graph.nodes]
        self.assertEqual(ids[1:], ["node_0", "node_0_1"])
        self.assertEqual(len(set(ids)), 3)
        self.assertEqual(graph.index_of("node_0"), 1)

    def test_duplicate_explicit_ids_rejected(self):
        with self.assertRaises(ValidationError):
            Graph(nodes=[{"type": "talk", "id": "a"}, {"type": "talk", "id": "a"}])

    def test_unknown_successor_rejected(self):
        with self.assertRaises(ValidationError):
            Graph(nodes=[{"type": "talk", "id": "a", "next": ["missing"]}])

    def test_next_may_reference_generated_id(self):
        graph = Graph(nodes=[{"type": "talk", "id": "a", "next": ["node_1"]}, {"type": "talk"}])
        self.assertEqual(graph.nodes[1].id, "node_1")

    def test_unknown_node_type_rejected(self):
        with self.assertRaises(ValidationError):
            Graph(nodes=[{"type": "teleport"}])


if __name__ == "__main__":
    unittest.main()
