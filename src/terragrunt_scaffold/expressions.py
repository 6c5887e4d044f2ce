#!/usr/bin/env python3
"""
HCL Expression Evaluator

This module evaluates attribute expressions of Terraform declaration files on
a best-effort basis against an empty context. Expressions are the lark parse
trees produced by python-hcl2's grammar; templates (quoted strings and
heredocs) are decoded here and their interpolations parsed with the same
grammar.

Evaluation is partial: literal expressions produce a concrete value, an
expression that references a single symbol produces that symbol's name, and
anything that needs external bindings raises EvaluationError.
"""

import re
from typing import Any, Dict, List, Optional, Union
from dataclasses import dataclass

from hcl2.parser import hcl2 as hcl2_parser
from lark import Token, Tree
from lark.exceptions import LarkError

from .errors import EvaluationError


@dataclass(frozen=True)
class Literal:
    """Concrete value of a fully literal expression"""
    value: Any


@dataclass(frozen=True)
class SymbolicReference:
    """Expression that stands for a named symbol rather than a value"""
    name: str

    @property
    def value(self) -> str:
        return self.name


_LAYOUT = ('new_line_or_comment', 'new_line_and_or_comma')
_KEYWORD_VALUES = {'true': True, 'false': False, 'null': None}
_ESCAPES = {'n': '\n', 'r': '\r', 't': '\t', '"': '"', '\\': '\\'}
_HEREDOC = re.compile(r'<<(-?)([A-Za-z][A-Za-z0-9._-]+)\n(.*)\2$', re.S)

# Operator binding strength, tightest last
_PRECEDENCE = {
    '||': 1,
    '&&': 2,
    '==': 3, '!=': 3,
    '<': 4, '<=': 4, '>': 4, '>=': 4,
    '+': 5, '-': 5,
    '*': 6, '/': 6, '%': 6,
}


def _significant(node: Tree) -> List[Any]:
    """Children of a node without newlines, comments and separators"""
    return [child for child in node.children
            if not (isinstance(child, Tree) and child.data in _LAYOUT)]


def _subtrees(node: Tree) -> List[Tree]:
    return [child for child in _significant(node) if isinstance(child, Tree)]


def _identifier(node: Tree) -> str:
    return str(node.children[0])


def _bare_key(node: Tree) -> Optional[str]:
    """Name of an object key written as a bare identifier"""
    if node.data == 'identifier':
        return _identifier(node)
    if node.data == 'expr_term':
        inner = _significant(node)
        if len(inner) == 1 and isinstance(inner[0], Tree) and inner[0].data == 'identifier':
            return _identifier(inner[0])
    return None


def parse_expression(source: str) -> Tree:
    """
    Parse standalone expression text with the declaration-file grammar

    Raises:
        EvaluationError: if the text is not a valid expression
    """
    try:
        tree = hcl2_parser.parse(f"expression = {source.strip()}\n")
    except LarkError as e:
        raise EvaluationError(f"Invalid expression {source!r}: {str(e)}") from e
    body = tree.children[0]
    attribute = next(child for child in body.children
                     if isinstance(child, Tree) and child.data == 'attribute')
    return _significant(attribute)[1]


# Templates

def _scan_interpolation(text: str, start: int) -> int:
    """Return the index of the brace closing the interpolation opened before start"""
    depth = 1
    i = start
    while i < len(text):
        char = text[i]
        if char == '"':
            i += 1
            while i < len(text) and text[i] != '"':
                i += 2 if text[i] == '\\' else 1
        elif char == '{':
            depth += 1
        elif char == '}':
            depth -= 1
            if depth == 0:
                return i
        i += 1
    raise EvaluationError(f"Unterminated template interpolation at offset {start}")


def template_parts(text: str, quoted: bool = True) -> List[Union[str, Tree]]:
    """
    Split template text into decoded strings and interpolated expressions

    Args:
        text: Template body without its quotes or heredoc markers
        quoted: True for quoted strings, which also decode backslash escapes

    Raises:
        EvaluationError: on invalid escapes, directives or interpolations
    """
    parts: List[Union[str, Tree]] = []
    buffer = []
    i = 0
    while i < len(text):
        char = text[i]
        if quoted and char == '\\':
            escape = text[i + 1:i + 2]
            if escape in _ESCAPES:
                buffer.append(_ESCAPES[escape])
                i += 2
            elif escape in ('u', 'U'):
                width = 4 if escape == 'u' else 8
                digits = text[i + 2:i + 2 + width]
                try:
                    buffer.append(chr(int(digits, 16)))
                except ValueError:
                    raise EvaluationError(f"Invalid unicode escape \\{escape}{digits}")
                i += 2 + width
            else:
                raise EvaluationError(f"Invalid escape sequence \\{escape}")
        elif text.startswith('$${', i) or text.startswith('%%{', i):
            buffer.append(text[i + 1:i + 3])
            i += 3
        elif text.startswith('${', i):
            end = _scan_interpolation(text, i + 2)
            if buffer:
                parts.append(''.join(buffer))
                buffer = []
            parts.append(parse_expression(text[i + 2:end].strip().strip('~')))
            i = end + 1
        elif text.startswith('%{', i):
            raise EvaluationError("Template directives are not supported")
        else:
            buffer.append(char)
            i += 1
    if buffer or not parts:
        parts.append(''.join(buffer))
    return parts


def _heredoc_body(text: str, trim: bool) -> str:
    match = _HEREDOC.match(text)
    if not match:
        raise EvaluationError("Invalid heredoc")
    lines = match.group(3).split('\n')
    # The closing marker's indentation is not content
    lines[-1] = lines[-1].rstrip(' \t')
    if trim:
        widths = [len(line) - len(line.lstrip(' \t')) for line in lines if line.strip()]
        indent = min(widths) if widths else 0
        lines = [line[indent:] for line in lines]
    return '\n'.join(lines)


def _template_of(node) -> Optional[List[Union[str, Tree]]]:
    """Template parts of a string literal or heredoc node, None for other nodes"""
    if isinstance(node, Token):
        if node.type == 'STRING_LIT':
            return template_parts(str(node)[1:-1])
        return None
    if node.data in ('heredoc_template', 'heredoc_template_trim'):
        body = _heredoc_body(str(node.children[0]), node.data == 'heredoc_template_trim')
        return template_parts(body, quoted=False)
    return None


def decode_string_literal(text: str) -> str:
    """
    Decode a quoted string literal that contains no interpolation

    Raises:
        EvaluationError: if the string is a template or has invalid escapes
    """
    parts = template_parts(text[1:-1] if text.startswith('"') else text)
    if len(parts) != 1 or not isinstance(parts[0], str):
        raise EvaluationError(f"Expected a literal string, found template {text}")
    return parts[0]


# References

def _for_parts(node: Tree):
    """Split a for expression into bound names, collection, bodies, condition and grouping"""
    intro = next(child for child in node.children if isinstance(child, Tree) and child.data == 'for_intro')
    names = [_identifier(child) for child in _subtrees(intro) if child.data == 'identifier']
    collection = next(child for child in _subtrees(intro) if child.data != 'identifier')
    condition = None
    bodies = []
    for child in _subtrees(node):
        if child.data == 'for_cond':
            condition = _subtrees(child)[0]
        elif child.data != 'for_intro':
            bodies.append(child)
    grouped = any(isinstance(child, Token) and child == '...' for child in node.children)
    return names, collection, bodies, condition, grouped


def referenced_variables(node, bound: frozenset = frozenset()) -> List[str]:
    """
    Collect the root names of references that need external bindings

    Function names, attribute names, bare object keys and names bound by
    enclosing for expressions are not references.

    Returns:
        Root names in source order, one entry per reference
    """
    found: List[str] = []

    def walk(current, scope):
        template = _template_of(current)
        if template is not None:
            for part in template:
                if isinstance(part, Tree):
                    walk(part, scope)
            return
        if isinstance(current, Token):
            return

        data = current.data
        if data == 'identifier':
            name = _identifier(current)
            if name not in _KEYWORD_VALUES and name not in scope:
                found.append(name)
        elif data in ('function_call', 'provider_function_call'):
            for child in _subtrees(current):
                if child.data == 'arguments':
                    walk(child, scope)
        elif data == 'get_attr':
            return
        elif data == 'object_elem':
            key, value = _subtrees(current)
            if _bare_key(key) is None:
                walk(key, scope)
            walk(value, scope)
        elif data in ('for_tuple_expr', 'for_object_expr'):
            names, collection, bodies, condition, _ = _for_parts(current)
            walk(collection, scope)
            inner = scope | frozenset(names)
            for part in bodies + ([condition] if condition is not None else []):
                walk(part, inner)
        else:
            for child in current.children:
                walk(child, scope)

    walk(node, bound)
    return found


# Evaluation

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _normalize_number(value: Union[int, float]) -> Union[int, float]:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _template_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if _is_number(value):
        return str(value)
    raise EvaluationError("Cannot include the given value in a string template")


def _lookup(value: Any, key: Any) -> Any:
    try:
        if isinstance(value, list):
            if not _is_number(key) or int(key) != key:
                raise EvaluationError(f"Invalid index {key!r}")
            return value[int(key)]
        if isinstance(value, dict):
            return value[_template_string(key)]
    except (IndexError, KeyError):
        raise EvaluationError(f"Invalid index {key!r}")
    raise EvaluationError(f"Cannot access {key!r} on a primitive value")


def _apply_step(value: Any, step: Tree, scope: Dict[str, Any]) -> Any:
    if step.data == 'get_attr':
        return _lookup(value, _identifier(_subtrees(step)[0]))
    inner = _significant(step)
    if all(isinstance(child, Token) for child in inner):
        return _lookup(value, int(''.join(inner)))
    return _lookup(value, evaluate(_subtrees(step)[0], scope))


def _binary(op: str, left: Any, right: Any) -> Any:
    if op in ('==', '!='):
        equal = left == right and type(left) is type(right) or (_is_number(left) and _is_number(right) and left == right)
        return equal if op == '==' else not equal
    if op in ('&&', '||'):
        if not isinstance(left, bool) or not isinstance(right, bool):
            raise EvaluationError(f"Operator {op} requires bool operands")
        return (left and right) if op == '&&' else (left or right)
    if not _is_number(left) or not _is_number(right):
        raise EvaluationError(f"Operator {op} requires number operands")
    if op == '<':
        return left < right
    if op == '<=':
        return left <= right
    if op == '>':
        return left > right
    if op == '>=':
        return left >= right
    try:
        if op == '+':
            result = left + right
        elif op == '-':
            result = left - right
        elif op == '*':
            result = left * right
        elif op == '/':
            result = left / right
        else:
            result = left % right
    except ZeroDivisionError:
        raise EvaluationError("Division by zero")
    return _normalize_number(result)


def _flatten_operations(node, operands: List[Any], operators: List[str]):
    if isinstance(node, Tree) and node.data == 'binary_op':
        left, term = _subtrees(node)
        operator, right = _subtrees(term)
        _flatten_operations(left, operands, operators)
        operators.append(str(operator.children[0]))
        _flatten_operations(right, operands, operators)
    else:
        operands.append(node)


def _evaluate_operations(node: Tree, scope: Dict[str, Any]) -> Any:
    """Evaluate a chain of binary operations with HCL operator precedence"""
    # The grammar has no precedence levels, so chains are flattened first
    operands: List[Any] = []
    operators: List[str] = []
    _flatten_operations(node, operands, operators)

    values = [evaluate(operand, scope) for operand in operands]
    for level in sorted(set(_PRECEDENCE.values()), reverse=True):
        i = 0
        while i < len(operators):
            if _PRECEDENCE[operators[i]] == level:
                values[i:i + 2] = [_binary(operators[i], values[i], values[i + 1])]
                del operators[i]
            else:
                i += 1
    return values[0]


def _evaluate_for(node: Tree, scope: Dict[str, Any]) -> Any:
    names, collection_node, bodies, condition, grouped = _for_parts(node)
    collection = evaluate(collection_node, scope)
    if isinstance(collection, dict):
        pairs = sorted(collection.items())
    elif isinstance(collection, list):
        pairs = list(enumerate(collection))
    else:
        raise EvaluationError("For expression requires a collection")

    is_object = node.data == 'for_object_expr'
    tuple_result: List[Any] = []
    object_result: Dict[str, Any] = {}
    for key, value in pairs:
        inner = dict(scope)
        inner[names[-1]] = value
        if len(names) > 1:
            inner[names[0]] = key
        if condition is not None:
            keep = evaluate(condition, inner)
            if not isinstance(keep, bool):
                raise EvaluationError("For expression condition must be a bool")
            if not keep:
                continue
        if not is_object:
            tuple_result.append(evaluate(bodies[0], inner))
            continue
        result_key = _template_string(evaluate(bodies[0], inner))
        result_value = evaluate(bodies[1], inner)
        if grouped:
            object_result.setdefault(result_key, []).append(result_value)
        elif result_key in object_result:
            raise EvaluationError(f"Duplicate object key {result_key!r} in for expression")
        else:
            object_result[result_key] = result_value

    return object_result if is_object else tuple_result


def evaluate(node, scope: Optional[Dict[str, Any]] = None) -> Any:
    """
    Evaluate an expression tree against an empty context

    Only symbols bound by enclosing for expressions are available.

    Raises:
        EvaluationError: if the expression needs variables or functions
    """
    scope = scope or {}

    template = _template_of(node)
    if template is not None:
        if len(template) == 1 and isinstance(template[0], Tree):
            return evaluate(template[0], scope)
        return ''.join(part if isinstance(part, str) else _template_string(evaluate(part, scope))
                       for part in template)
    if isinstance(node, Token):
        raise EvaluationError(f"Unexpected token {str(node)!r}")

    data = node.data

    if data == 'expr_term':
        inner = _significant(node)[0]
        if isinstance(inner, Tree) and inner.data == 'identifier':
            name = _identifier(inner)
            if name in _KEYWORD_VALUES:
                return _KEYWORD_VALUES[name]
            if name not in scope:
                raise EvaluationError(f"Variables may not be used here: {name}")
            return scope[name]
        return evaluate(inner, scope)

    if data == 'int_lit':
        return int(''.join(node.children))

    if data == 'float_lit':
        return _normalize_number(float(''.join(node.children)))

    if data == 'tuple':
        return [evaluate(item, scope) for item in _significant(node)]

    if data == 'object':
        result = {}
        for element in _subtrees(node):
            key, value = _subtrees(element)
            name = _bare_key(key)
            if name is None:
                name = _template_string(evaluate(key, scope))
            result[name] = evaluate(value, scope)
        return result

    if data in ('function_call', 'provider_function_call'):
        name = '::'.join(_identifier(child) for child in _subtrees(node) if child.data == 'identifier')
        raise EvaluationError(f"Function calls may not be used here: {name}")

    if data in ('get_attr_expr_term', 'index_expr_term'):
        target, step = _subtrees(node)
        return _apply_step(evaluate(target, scope), step, scope)

    if data in ('attr_splat_expr_term', 'full_splat_expr_term'):
        target, splat = _subtrees(node)
        value = evaluate(target, scope)
        items = value if isinstance(value, list) else ([] if value is None else [value])
        results = []
        for item in items:
            for step in _subtrees(splat):
                item = _apply_step(item, step, scope)
            results.append(item)
        return results

    if data == 'unary_op':
        op, operand_node = _significant(node)
        operand = evaluate(operand_node, scope)
        if op == '-':
            if not _is_number(operand):
                raise EvaluationError("Unary minus requires a number")
            return -operand
        if not isinstance(operand, bool):
            raise EvaluationError("Logical not requires a bool")
        return not operand

    if data == 'binary_op':
        return _evaluate_operations(node, scope)

    if data == 'conditional':
        condition_node, true_result, false_result = _subtrees(node)
        condition = evaluate(condition_node, scope)
        if not isinstance(condition, bool):
            raise EvaluationError("Condition must be a bool")
        return evaluate(true_result if condition else false_result, scope)

    if data in ('for_tuple_expr', 'for_object_expr'):
        return _evaluate_for(node, scope)

    raise EvaluationError(f"Unsupported expression {data}")


def evaluate_partially(node) -> Union[Literal, SymbolicReference]:
    """
    Best-effort evaluation of an attribute expression

    An expression referencing exactly one symbol is returned as a
    SymbolicReference to that symbol's root name without evaluating it.
    Every other expression is evaluated against an empty context.

    Args:
        node: Expression tree as parsed by python-hcl2's grammar

    Raises:
        EvaluationError: if the expression is unresolvable
    """
    variables = referenced_variables(node)
    if len(variables) == 1:
        return SymbolicReference(variables[0])
    return Literal(evaluate(node))
