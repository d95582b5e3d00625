from __future__ import annotations

import abc
import itertools
from io import StringIO
from typing import Optional

import torch
from dendropy import Node, TaxonNamespace, Tree

from ..core.model import Model
from ..core.utils import process_object, register_class
from ..typing import ID
from .taxa import Taxa


def setup_indexes(tree: Tree) -> None:
    """Index the nodes of a tree.

    Leaves are indexed by the position of their taxon in the taxon namespace
    and internal nodes follow in postorder, the root having the largest
    index.
    """
    taxa_dict = {taxon.label: idx for idx, taxon in enumerate(tree.taxon_namespace)}
    indexer = itertools.count(len(tree.taxon_namespace))

    for node in tree.postorder_node_iter():
        if node.is_leaf():
            node.index = taxa_dict[node.taxon.label]
        else:
            node.index = next(indexer)


def parse_tree(taxa: Taxa, data: dict) -> Tree:
    taxon_namespace = TaxonNamespace([taxon.id for taxon in taxa])
    taxon_namespace_size = len(taxon_namespace)
    if 'newick' in data:
        tree = Tree.get(
            data=data['newick'],
            schema='newick',
            preserve_underscores=True,
            rooting='force-rooted',
            taxon_namespace=taxon_namespace,
        )
    elif 'file' in data:
        tree = Tree.get(
            path=data['file'],
            schema='newick',
            preserve_underscores=True,
            rooting='force-rooted',
            taxon_namespace=taxon_namespace,
        )
    else:
        raise ValueError('Tree model requires a file or newick element to be specified')
    if taxon_namespace_size != len(taxon_namespace):
        raise ValueError(
            'Some taxon names in the tree do not match those in the Taxa object'
        )
    if len(tree.leaf_nodes()) != taxon_namespace_size:
        raise ValueError('Every taxon of the Taxa object should be a leaf of the tree')
    tree.resolve_polytomies()
    setup_indexes(tree)
    return tree


def _find_node(tree: Tree, label: str) -> Node:
    node = tree.find_node_with_taxon_label(label)
    if node is None:
        node = tree.find_node_with_label(label)
    if node is None:
        raise ValueError(f'No node labelled `{label}\' in tree')
    return node


def reroot_tree(tree: Tree, label: str, include_branch: bool = True) -> None:
    """Reroot a tree in place above the node with the given label.

    The node becomes the left child of the new root and the rest of the
    tree hangs on the right. With ``include_branch`` the branch above the
    node stays on the left and the right branch has length zero, otherwise
    the left branch has length zero.

    A former root left with a single child is kept as a unary node when it
    becomes the right child of the new root, so that the right root branch
    remains of length zero.
    """
    target = _find_node(tree, label)
    if target is tree.seed_node:
        raise ValueError('Cannot reroot a tree at its root')
    old_root = tree.seed_node
    length = target.edge_length or 0.0
    parent = target.parent_node
    parent.remove_child(target)

    new_root = Node()
    new_root.add_child(target)
    target.edge_length = length if include_branch else 0.0

    # reverse the edges on the path from the target to the old root
    cur = parent
    cur_length = 0.0 if include_branch else length
    attach_to = new_root
    while cur is not None:
        up = cur.parent_node
        up_length = cur.edge_length or 0.0
        if up is not None:
            up.remove_child(cur)
        attach_to.add_child(cur)
        cur.edge_length = cur_length
        attach_to, cur, cur_length = cur, up, up_length

    if len(old_root.child_nodes()) == 1 and old_root.parent_node is not new_root:
        child = old_root.child_nodes()[0]
        grand_parent = old_root.parent_node
        old_root.remove_child(child)
        grand_parent.remove_child(old_root)
        grand_parent.add_child(child)
        child.edge_length = (child.edge_length or 0.0) + (old_root.edge_length or 0.0)

    tree.seed_node = new_root
    tree.is_rooted = True
    setup_indexes(tree)


class TreeModel(Model):
    """Rooted tree seen through the operations needed by the substitution
    count recursions.

    Nodes are identified by small integers. Leaves carry the index of their
    taxon and every non-root node has a branch above it.
    """

    _tag = 'tree_model'

    @abc.abstractmethod
    def branch_lengths(self) -> torch.Tensor:
        """Branch lengths indexed by node, zero for the root."""
        ...

    @property
    @abc.abstractmethod
    def postorder(self) -> list[int]:
        ...

    @property
    @abc.abstractmethod
    def root_index(self) -> int:
        ...

    @property
    @abc.abstractmethod
    def node_count(self) -> int:
        ...

    @abc.abstractmethod
    def children(self, index: int) -> list[int]:
        ...

    @abc.abstractmethod
    def leaf_taxon(self, index: int) -> str:
        ...

    def is_leaf(self, index: int) -> bool:
        return len(self.children(index)) == 0

    def total_length(self) -> float:
        return float(self.branch_lengths().sum())


@register_class
class BranchLengthTreeModel(TreeModel):
    """Tree model with fixed branch lengths read from a newick string.

    :param id_: ID of object
    :param Tree tree: dendropy tree
    :param Taxa taxa: taxa of the tree
    """

    def __init__(self, id_: ID, tree: Tree, taxa: Taxa) -> None:
        super().__init__(id_)
        self.tree = tree
        self._taxa = taxa
        self._branch_lengths = None
        self.update_traversals()

    def update_traversals(self) -> None:
        nodes = list(self.tree.postorder_node_iter())
        self._node_count = len(nodes)
        self._postorder = [node.index for node in nodes]
        self._root_index = self.tree.seed_node.index
        self._children = [None] * self._node_count
        self._labels = [None] * self._node_count
        branch_lengths = [0.0] * self._node_count
        for node in nodes:
            self._children[node.index] = [child.index for child in node.child_nodes()]
            if node.is_leaf():
                self._labels[node.index] = node.taxon.label
            if node.parent_node is not None:
                branch_lengths[node.index] = float(node.edge_length or 0.0)
        self._branch_lengths = torch.tensor(branch_lengths, dtype=torch.float64)

    def branch_lengths(self) -> torch.Tensor:
        return self._branch_lengths

    def set_branch_lengths(self, branch_lengths: torch.Tensor) -> None:
        for node in self.tree.postorder_node_iter():
            if node.parent_node is not None:
                node.edge_length = float(branch_lengths[node.index])
        self.update_traversals()
        self.fire_model_changed()

    @property
    def postorder(self) -> list[int]:
        return self._postorder

    @property
    def root_index(self) -> int:
        return self._root_index

    @property
    def node_count(self) -> int:
        return self._node_count

    @property
    def taxa(self) -> Taxa:
        return self._taxa

    def children(self, index: int) -> list[int]:
        return self._children[index]

    def leaf_taxon(self, index: int) -> Optional[str]:
        return self._labels[index]

    def reroot(self, label: str, include_branch: bool = True) -> None:
        """Reroot the tree above a node (see :func:`reroot_tree`)."""
        reroot_tree(self.tree, label, include_branch)
        self.update_traversals()
        self.fire_model_changed()

    def as_newick(self) -> str:
        out = StringIO()
        self._write_newick(self.tree.seed_node, out)
        return out.getvalue()

    def _write_newick(self, node, stream) -> None:
        if not node.is_leaf():
            stream.write('(')
            for i, child in enumerate(node.child_node_iter()):
                if i > 0:
                    stream.write(',')
                self._write_newick(child, stream)
            stream.write(')')
        else:
            stream.write(str(node.taxon.label))
        if node.parent_node is not None:
            stream.write(':{}'.format(self._branch_lengths[node.index].item()))
        else:
            stream.write(';')

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        taxa = process_object(data['taxa'], dic)
        tree = parse_tree(taxa, data)
        if 'reroot' in data:
            reroot_tree(tree, data['reroot'], data.get('include_branch', True))
        return cls(id_, tree, taxa)
