from documcp.constants import Language
from documcp.simulation import NodeState, build_call_graph

RECURSIVE_SOURCE = '''
def factorial(n):
    if n <= 1:
        return 1
    return n * factorial(n - 1)
'''

MUTUAL_SOURCE = '''
function isEven(n) {
  if (n === 0) return true;
  return isOdd(n - 1);
}

function isOdd(n) {
  if (n === 0) return false;
  return isEven(n - 1);
}
'''

PIPELINE_SOURCE = '''
def run(items):
    cleaned = clean(items)
    for item in cleaned:
        save(item)
    save(None)
    return report(cleaned)

def clean(items):
    return [normalize(i) for i in items]

def normalize(item):
    return item.strip()

def save(item):
    database.insert(item)

def report(items):
    return len(items)
'''


class TestCallGraph:
    """Test breadth-first call graph construction."""

    def test_direct_recursion_is_one_recursive_edge(self, analyzer):
        """Test direct recursion is one recursive edge."""
        model = analyzer.analyze_source(RECURSIVE_SOURCE, Language.PYTHON)
        graph = build_call_graph("factorial", model)

        assert list(graph.nodes) == ["factorial"]
        assert len(graph.edges) == 1
        edge = graph.edges[0]
        assert (edge.caller, edge.callee, edge.recursive) == ("factorial", "factorial", True)
        assert edge.lines == [5]

    def test_mutual_recursion(self, analyzer):
        """Test mutual recursion."""
        model = analyzer.analyze_source(MUTUAL_SOURCE, Language.JAVASCRIPT)
        graph = build_call_graph("isEven", model)

        assert set(graph.nodes) == {"isEven", "isOdd"}
        recursive = [edge for edge in graph.edges if edge.recursive]
        assert [(edge.caller, edge.callee) for edge in recursive] == [("isOdd", "isEven")]
        assert graph.nodes["isOdd"].depth == 1

    def test_breadth_first_depths(self, analyzer):
        """Test breadth first depths."""
        model = analyzer.analyze_source(PIPELINE_SOURCE, Language.PYTHON)
        graph = build_call_graph("run", model)

        assert graph.nodes["run"].depth == 0
        assert graph.nodes["clean"].depth == 1
        assert graph.nodes["save"].depth == 1
        assert graph.nodes["report"].depth == 1
        assert graph.nodes["normalize"].depth == 2
        assert graph.nodes["item.strip"].depth == 3
        assert graph.max_depth_reached == 3
        assert all(node.state == NodeState.VISITED.value for node in graph.nodes.values()
                   if node.resolved)

    def test_repeated_calls_share_an_edge(self, analyzer):
        """Test repeated calls share an edge."""
        model = analyzer.analyze_source(PIPELINE_SOURCE, Language.PYTHON)
        graph = build_call_graph("run", model)

        save_edges = [edge for edge in graph.edges if edge.caller == "run" and edge.callee == "save"]
        assert len(save_edges) == 1
        assert save_edges[0].lines == [5, 6]

    def test_unresolved_calls_are_leaves(self, analyzer):
        """Test unresolved calls are leaves."""
        model = analyzer.analyze_source(PIPELINE_SOURCE, Language.PYTHON)
        graph = build_call_graph("run", model)

        insert = graph.nodes["database.insert"]
        assert insert.resolved is False
        assert not [edge for edge in graph.edges if edge.caller == "database.insert"]

    def test_depth_limit(self, analyzer):
        """Test depth limit."""
        model = analyzer.analyze_source(PIPELINE_SOURCE, Language.PYTHON)
        graph = build_call_graph("run", model, max_depth=1)

        assert "normalize" not in graph.nodes
        assert graph.max_depth_reached == 1
        assert graph.nodes["clean"].state == NodeState.VISITED.value
        assert all(node.state == NodeState.VISITED.value for node in graph.nodes.values())

    def test_unknown_entry_point(self, analyzer):
        """Test unknown entry point."""
        model = analyzer.analyze_source(RECURSIVE_SOURCE, Language.PYTHON)
        graph = build_call_graph("missing", model)

        assert graph.nodes["missing"].resolved is False
        assert graph.edges == []

    def test_node_details(self, analyzer):
        """Test node parameters and source details."""
        model = analyzer.analyze_source(RECURSIVE_SOURCE, Language.PYTHON)
        node = build_call_graph("factorial", model).nodes["factorial"]

        assert node.parameters == ["n"]
        assert node.branches == 1
        assert node.line == 2
