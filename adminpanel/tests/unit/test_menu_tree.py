from __future__ import annotations

from adminpanel.domain.models import Page
from adminpanel.services.menu import build_menu_tree, close_over_ancestors, descendant_ids


def _page(page_id: int, parent_id: int | None = None, order: int = 0) -> Page:
    return Page(
        id=page_id,
        name_ar=f"صفحة {page_id}",
        name_en=f"Page {page_id}",
        url=f"/p{page_id}",
        parent_id=parent_id,
        display_order=order,
        is_active=True,
        is_in_menu=True,
    )


def test_ancestor_closure_pulls_in_whole_chain() -> None:
    # Granting only the leaf C still shows A and B above it.
    parents = {1: None, 2: 1, 3: 2, 4: None}
    assert close_over_ancestors({3}, parents) == {1, 2, 3}


def test_ancestor_closure_ignores_unknown_pages() -> None:
    parents = {1: None, 2: 99}
    assert close_over_ancestors({2, 50}, parents) == {2}


def test_tree_nests_chain_in_order() -> None:
    pages = [_page(1), _page(2, 1), _page(3, 2)]
    tree = build_menu_tree(pages, {1, 2, 3})
    assert [node.id for node in tree] == [1]
    assert [node.id for node in tree[0].children] == [2]
    assert [node.id for node in tree[0].children[0].children] == [3]
    assert tree[0].children[0].children[0].children == []


def test_siblings_sort_by_display_order_then_id() -> None:
    pages = [_page(5, order=2), _page(4, order=1), _page(3, order=2), _page(6, 4, order=0)]
    tree = build_menu_tree(pages, {3, 4, 5, 6})
    assert [node.id for node in tree] == [4, 3, 5]
    assert [node.id for node in tree[0].children] == [6]


def test_orphan_without_included_parent_is_dropped() -> None:
    pages = [_page(1), _page(2, 1)]
    assert build_menu_tree(pages, {2}) == []


def test_corrupt_cycle_terminates() -> None:
    # A parent loop never reaches a root, so nothing renders and nothing hangs.
    pages = [_page(1, 2), _page(2, 1), _page(3)]
    tree = build_menu_tree(pages, {1, 2, 3})
    assert [node.id for node in tree] == [3]
    assert close_over_ancestors({1}, {1: 2, 2: 1}) == {1, 2}
    assert descendant_ids({1: 2, 2: 1}, 1) == {2}


def test_descendants_cover_every_depth() -> None:
    parents = {1: None, 2: 1, 3: 2, 4: 3, 5: None}
    assert descendant_ids(parents, 1) == {2, 3, 4}
    assert descendant_ids(parents, 4) == set()
