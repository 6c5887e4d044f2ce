#!/usr/bin/env python3
"""
Declaration Parser

This module parses Terraform declaration files with python-hcl2's grammar
and keeps the top-level variable blocks, with each attribute held as its
unevaluated expression tree. Attribute values are resolved with the
best-effort expression evaluator.
"""

import logging
from typing import Dict, List, Optional, Union
from dataclasses import dataclass, field

from hcl2.parser import hcl2 as hcl2_parser
from lark import Token, Tree
from lark.exceptions import LarkError

from .errors import DeclarationParseError, EvaluationError
from .expressions import Literal, SymbolicReference, decode_string_literal, evaluate_partially

logger = logging.getLogger(__name__)

VARIABLE_BLOCK = 'variable'


@dataclass
class Block:
    """A labelled group of attribute expressions in a declaration file"""
    labels: List[str] = field(default_factory=list)
    attributes: Dict[str, Tree] = field(default_factory=dict)


@dataclass
class DeclarationFile:
    """Parsed declaration file"""
    filename: str
    variables: List[Block] = field(default_factory=list)


def _content(node: Tree) -> List[Union[Tree, Token]]:
    return [child for child in node.children
            if not (isinstance(child, Tree) and child.data == 'new_line_or_comment')]


def _label(node: Union[Tree, Token]) -> str:
    if isinstance(node, Tree):
        return str(node.children[0])
    return decode_string_literal(str(node))


class DeclarationParser:
    """Parses declaration file content into its variable blocks"""

    def parse(self, content: str, filename: str) -> DeclarationFile:
        """
        Parse raw file content

        Args:
            content: Declaration file text
            filename: Name used in diagnostics

        Returns:
            DeclarationFile with its top-level variable blocks

        Raises:
            DeclarationParseError: if the content is not valid HCL
        """
        try:
            # The grammar needs a newline after the last body item
            tree = hcl2_parser.parse(content + "\n")
        except LarkError as e:
            raise DeclarationParseError(f"Failed to parse {filename}: {str(e)}") from e

        declaration = DeclarationFile(filename=filename)
        for item in _content(tree.children[0]):
            if item.data != 'block':
                continue
            kind, *labels, body = _content(item)
            if str(kind.children[0]) != VARIABLE_BLOCK:
                continue
            declaration.variables.append(self._variable_block(labels, body, filename))

        return declaration

    def _variable_block(self, labels: List, body: Tree, filename: str) -> Block:
        try:
            block = Block(labels=[_label(label) for label in labels])
        except EvaluationError as e:
            raise DeclarationParseError(f"Invalid block label in {filename}: {str(e)}") from e

        for item in _content(body):
            if item.data != 'attribute':
                logger.debug(f"Ignoring nested block in variable {block.labels} of {filename}")
                continue
            name, expression = _content(item)
            name = str(name.children[0])
            if name in block.attributes:
                raise DeclarationParseError(f"Attribute {name} redefined in {filename}")
            block.attributes[name] = expression
        return block


def resolve_block_attribute(block: Block, name: str) -> Optional[Union[Literal, SymbolicReference]]:
    """
    Resolve the best-effort value of a block attribute

    Args:
        block: Block to read from
        name: Attribute name

    Returns:
        Literal or SymbolicReference, or None when the attribute is absent

    Raises:
        EvaluationError: if the attribute expression needs external bindings
    """
    if name not in block.attributes:
        return None
    return evaluate_partially(block.attributes[name])
