"""Department tree selection resolution."""
from phone_assets.utils import department_tree

#        root
#       /    \
#     sales   rd
#     /  \      \
#  north south  lab
ROWS = [
    ("root", None),
    ("sales", "root"),
    ("rd", "root"),
    ("north", "sales"),
    ("south", "sales"),
    ("lab", "rd"),
]


def _tree():
    return department_tree.build_tree(ROWS)


def test_descendants_include_the_node_itself():
    tree = _tree()
    assert department_tree.descendants(tree, "sales") == {"sales", "north", "south"}
    assert department_tree.descendants(tree, "lab") == {"lab"}
    assert department_tree.descendants(tree, "root") == {r[0] for r in ROWS}


def test_descendants_are_memoized():
    tree = _tree()
    first = department_tree.descendants(tree, "rd")
    assert department_tree.descendants(tree, "rd") is first


def test_selecting_a_parent_selects_its_subtree():
    selection = department_tree.resolve_selection(_tree(), ["sales"])
    assert selection.effective == {"sales", "north", "south"}
    assert selection.indeterminate == {"root"}


def test_all_children_selected_checks_the_parent():
    selection = department_tree.resolve_selection(_tree(), ["north", "south"])
    assert "sales" in selection.effective
    assert selection.indeterminate == {"root"}


def test_upward_propagation_reaches_the_root():
    selection = department_tree.resolve_selection(_tree(), ["north", "south", "lab"])
    assert selection.effective == {r[0] for r in ROWS}
    assert selection.indeterminate == frozenset()


def test_partial_selection_is_indeterminate():
    selection = department_tree.resolve_selection(_tree(), ["north"])
    assert selection.effective == {"north"}
    assert selection.indeterminate == {"sales", "root"}


def test_empty_selection():
    selection = department_tree.resolve_selection(_tree(), [])
    assert selection.effective == frozenset()
    assert selection.indeterminate == frozenset()


def test_orphans_and_cycles_do_not_loop():
    tree = department_tree.build_tree([("a", "b"), ("b", "a"), ("c", "missing")])
    assert "c" in tree.roots
    assert department_tree.descendants(tree, "a") == {"a", "b"}
    selection = department_tree.resolve_selection(tree, ["a"])
    assert {"a", "b"} <= selection.effective
