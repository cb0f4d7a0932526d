"""Per-module symbol extraction from a JavaScript syntax tree.

The extractor runs in two passes over the Tree-sitter CST:

1. *Declarations*: classes (and their methods), named functions,
   function-valued variables and assignments, and the function members of
   an object literal assigned to ``module.exports`` are registered in the
   callable table in document order.
2. *Entering pass*: every node is visited pre-order and fed to the
   assignment, import and call handlers.  Call stacks are captured here, so
   functions without a name resolve against the complete callable table by
   fingerprint.

Within the entering pass a later write to the same key replaces an earlier
one.
"""

from __future__ import annotations

import posixpath
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .canonical import canonical_text, fingerprint
from .models import (
    ANONYMOUS,
    AssignedValue,
    Callable,
    ClassInfo,
    Frame,
    MethodInfo,
    SymbolTable,
)

EXPORT_TARGET = "module.exports"
REQUIRE = "require"

DECLARED_FUNCTION_TYPES = frozenset({
    "function_declaration",
    "generator_function_declaration",
})
# "function" is the pre-0.21 grammar name of function_expression
FUNCTION_VALUE_TYPES = frozenset({
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
})
FUNCTION_TYPES = DECLARED_FUNCTION_TYPES | FUNCTION_VALUE_TYPES | {"method_definition"}
ASSIGNMENT_TYPES = frozenset({"assignment_expression", "augmented_assignment_expression"})
CLASS_TYPES = frozenset({"class_declaration", "class"})
COMMENT_TYPES = frozenset({"comment", "html_comment"})

_UNDEFINED = AssignedValue(fingerprint=fingerprint("undefined"), kind="undefined", code="undefined")


# ------------------------------------------------------------------
# Node helpers
# ------------------------------------------------------------------

def _text(node: Any) -> str:
    return node.text.decode("utf-8", errors="replace")


def _walk(root: Any) -> Iterator[Any]:
    """Pre-order, document-order traversal without recursion."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def _named(node: Any) -> List[Any]:
    return [c for c in node.named_children if c.type not in COMMENT_TYPES]


def _string_value(node: Any) -> Optional[str]:
    if node is None or node.type != "string":
        return None
    return _text(node)[1:-1]


def _property_key(node: Any) -> Optional[str]:
    if node is None:
        return None
    if node.type in ("property_identifier", "identifier", "private_property_identifier"):
        return _text(node)
    if node.type == "string":
        return _string_value(node)
    if node.type == "number":
        return _text(node)
    return None


def render_callee(node: Any) -> str:
    """Render a callee expression as the text key used for fuzzy matching.

    ``a.b`` -> ``a.b``; ``a[i]`` -> ``a.[i]``; ``f()`` -> ``f()``.  Argument
    values are dropped on purpose.
    """
    kind = node.type
    if kind in ("identifier", "property_identifier", "private_property_identifier"):
        return _text(node)
    if kind == "member_expression":
        obj = node.child_by_field_name("object")
        prop = node.child_by_field_name("property")
        return render_callee(obj) + "." + render_callee(prop)
    if kind == "subscript_expression":
        obj = node.child_by_field_name("object")
        index = node.child_by_field_name("index")
        return render_callee(obj) + ".[" + render_callee(index) + "]"
    if kind == "call_expression":
        return render_callee(node.child_by_field_name("function")) + "()"
    if kind == "parenthesized_expression":
        inner = _named(node)
        if inner:
            return render_callee(inner[0])
    return canonical_text(node)


def _enclosing_class_name(method: Any) -> Optional[str]:
    body = method.parent
    if body is None or body.type != "class_body":
        return None
    cls = body.parent
    if cls is None or cls.type not in CLASS_TYPES:
        return None
    name = cls.child_by_field_name("name")
    return _text(name) if name is not None else None


def _superclass_name(cls: Any) -> Optional[str]:
    for child in cls.children:
        if child.type == "class_heritage":
            exprs = _named(child)
            if not exprs:
                return None
            expr = exprs[0]
            return _text(expr) if expr.type == "identifier" else canonical_text(expr)
    return None


def _is_top_level(node: Any) -> bool:
    parent = node.parent
    while parent is not None:
        if parent.type in FUNCTION_TYPES:
            return False
        parent = parent.parent
    return True


def _pattern_bindings(pattern: Any) -> List[Tuple[str, str]]:
    """``{a, b: c, d = 1}`` -> ``[("a", "a"), ("b", "c"), ("d", "d")]``."""
    bindings: List[Tuple[str, str]] = []
    for child in _named(pattern):
        if child.type == "shorthand_property_identifier_pattern":
            name = _text(child)
            bindings.append((name, name))
        elif child.type == "pair_pattern":
            key = _property_key(child.child_by_field_name("key"))
            value = child.child_by_field_name("value")
            if value is not None and value.type == "assignment_pattern":
                value = value.child_by_field_name("left")
            if key is not None and value is not None and value.type == "identifier":
                bindings.append((key, _text(value)))
        elif child.type == "object_assignment_pattern":
            left = child.child_by_field_name("left")
            if left is not None:
                name = _text(left)
                bindings.append((name, name))
    return bindings


# ------------------------------------------------------------------
# Extractor
# ------------------------------------------------------------------

class SymbolExtractor:
    """Builds the :class:`SymbolTable` of one module.

    *module_path* is only used to resolve relative ``require`` specifiers
    (``./x``, ``../x``) to module paths.  Without it specifiers are kept
    verbatim.
    """

    def __init__(self, module_path: Optional[str] = None) -> None:
        self.module_path = module_path
        self.table = SymbolTable()
        self._fingerprints: Dict[Tuple[int, int, str], Tuple[str, str]] = {}

    def extract(self, tree: Any) -> SymbolTable:
        root = getattr(tree, "root_node", tree)
        self._register_declarations(root)
        for node in _walk(root):
            if node.type == "variable_declarator":
                self._handle_import(node)
                self._handle_declarator(node)
            elif node.type in ASSIGNMENT_TYPES:
                self._handle_assignment(node)
            elif node.type == "call_expression":
                self._handle_call(node)
        return self.table

    # -- content identity ------------------------------------------------

    def _code(self, node: Any) -> Tuple[str, str]:
        """Canonical text and fingerprint of *node*, memoized per span."""
        key = (node.start_byte, node.end_byte, node.type)
        cached = self._fingerprints.get(key)
        if cached is None:
            code = canonical_text(node)
            cached = (code, fingerprint(code))
            self._fingerprints[key] = cached
        return cached

    def _value(self, node: Optional[Any]) -> AssignedValue:
        if node is None:
            return _UNDEFINED
        code, fp = self._code(node)
        return AssignedValue(fingerprint=fp, kind=node.type, code=code)

    def _add_callable(self, name: str, node: Any) -> None:
        code, fp = self._code(node)
        self.table.callable.add(Callable(name=name, code=code, fingerprint=fp, kind=node.type))

    # -- pass 1: declarations --------------------------------------------

    def _register_declarations(self, root: Any) -> None:
        for node in _walk(root):
            kind = node.type
            if kind == "class_declaration":
                self._register_class(node)
            elif kind in DECLARED_FUNCTION_TYPES or kind in ("function_expression", "function", "generator_function"):
                name = node.child_by_field_name("name")
                if name is not None:
                    self._add_callable(_text(name), node)
            elif kind == "variable_declarator":
                name = node.child_by_field_name("name")
                value = node.child_by_field_name("value")
                if name is not None and name.type == "identifier" and value is not None:
                    if value.type in FUNCTION_VALUE_TYPES:
                        self._add_callable(_text(name), value)
            elif kind in ASSIGNMENT_TYPES:
                left = node.child_by_field_name("left")
                right = node.child_by_field_name("right")
                if left is None or right is None:
                    continue
                target = render_callee(left)
                if right.type in FUNCTION_VALUE_TYPES:
                    self._add_callable(target, right)
                elif target == EXPORT_TARGET and right.type == "object":
                    self._register_export_members(right)

    def _register_class(self, node: Any) -> None:
        name = node.child_by_field_name("name")
        body = node.child_by_field_name("body")
        if name is None or body is None:
            return
        class_name = _text(name)
        info = ClassInfo(extends=_superclass_name(node))
        for member in _named(body):
            if member.type != "method_definition":
                continue
            method_name = _property_key(member.child_by_field_name("name"))
            if method_name is None:
                continue
            code, fp = self._code(member)
            info.methods.append(MethodInfo(name=method_name, code=code, fingerprint=fp))
        self.table.classes[class_name] = info
        for method in info.methods:
            qualified = f"{class_name}.{method.name}"
            self.table.callable.add(Callable(
                name=qualified,
                code=method.code,
                fingerprint=method.fingerprint,
                kind="method_definition",
            ))

    def _register_export_members(self, obj: Any) -> None:
        # Callers reach these as <binding>.<key>, so the bare key is the name
        for member in _named(obj):
            if member.type == "method_definition":
                key = _property_key(member.child_by_field_name("name"))
                if key is not None:
                    self._add_callable(key, member)
            elif member.type == "pair":
                key = _property_key(member.child_by_field_name("key"))
                value = member.child_by_field_name("value")
                if key is not None and value is not None and value.type in FUNCTION_VALUE_TYPES:
                    self._add_callable(key, value)

    # -- pass 2: entering handlers ---------------------------------------

    def _handle_declarator(self, node: Any) -> None:
        name = node.child_by_field_name("name")
        if name is None or name.type != "identifier" or not _is_top_level(node):
            return
        self.table.assignment[_text(name)] = self._value(node.child_by_field_name("value"))

    def _handle_assignment(self, node: Any) -> None:
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if left is None or right is None:
            return
        target = render_callee(left)
        value = self._value(right)
        if target == EXPORT_TARGET:
            self.table.exported["export"] = value
        else:
            key = _named_export_key(target)
            if key is not None:
                self.table.exported[key] = value
        if _is_top_level(node):
            self.table.assignment[target] = value

    def _handle_import(self, node: Any) -> None:
        name = node.child_by_field_name("name")
        value = node.child_by_field_name("value")
        if name is None or value is None:
            return
        target = _require_target(value)
        if target is None:
            return
        specifier, member = target
        module = self._resolve_specifier(specifier)
        if name.type == "object_pattern":
            for key, binding in _pattern_bindings(name):
                self.table.imported[binding] = f"{module}.{key}"
        elif name.type == "identifier":
            self.table.imported[_text(name)] = f"{module}.{member}" if member else module

    def _resolve_specifier(self, specifier: str) -> str:
        resolved = specifier
        if self.module_path is not None and (
            specifier in (".", "..") or specifier.startswith(("./", "../"))
        ):
            base = posixpath.dirname(self.module_path)
            resolved = posixpath.normpath(posixpath.join(base, specifier))
        if resolved.endswith(".js"):
            resolved = resolved[: -len(".js")]
        return resolved

    def _handle_call(self, node: Any) -> None:
        callee = node.child_by_field_name("function")
        if callee is None:
            return
        self.table.called[render_callee(callee)] = self._call_stack(node)

    def _call_stack(self, node: Any) -> List[Frame]:
        frames: List[Frame] = []
        parent = node.parent
        while parent is not None:
            if parent.type in FUNCTION_TYPES:
                frames.append(self._frame(parent))
            parent = parent.parent
        return frames

    def _frame(self, fn: Any) -> Frame:
        _, fp = self._code(fn)
        line = fn.start_point[0] + 1
        declared = _declared_name(fn)
        if declared is not None:
            return Frame(name=declared, line=line, fingerprint=fp)
        match = self.table.callable.find_by_fingerprint(fp)
        return Frame(
            name=match.name if match is not None else ANONYMOUS,
            line=line,
            fingerprint=fp,
            anonymous=True,
        )


def _declared_name(fn: Any) -> Optional[str]:
    if fn.type == "arrow_function":
        return None
    name = fn.child_by_field_name("name")
    if name is None:
        return None
    if fn.type == "method_definition":
        key = _property_key(name)
        if key is None:
            return None
        cls = _enclosing_class_name(fn)
        return f"{cls}.{key}" if cls else key
    return _text(name)


def _named_export_key(target: str) -> Optional[str]:
    for prefix in ("module.exports.", "exports."):
        if target.startswith(prefix):
            key = target[len(prefix):]
            # "export" is the slot for the whole module.exports value
            if key and key != "export" and "." not in key:
                return key
    return None


def _require_target(value: Any) -> Optional[Tuple[str, Optional[str]]]:
    """``require('m')`` -> ``('m', None)``; ``require('m').q`` -> ``('m', 'q')``."""
    member = None
    if value.type == "member_expression":
        prop = value.child_by_field_name("property")
        member = _property_key(prop)
        value = value.child_by_field_name("object")
        if member is None or value is None:
            return None
    if value.type != "call_expression":
        return None
    fn = value.child_by_field_name("function")
    if fn is None or fn.type != "identifier" or _text(fn) != REQUIRE:
        return None
    args = value.child_by_field_name("arguments")
    if args is None:
        return None
    first = _named(args)
    specifier = _string_value(first[0]) if first else None
    if specifier is None:
        return None
    return specifier, member


def extract(tree: Any, module_path: Optional[str] = None) -> SymbolTable:
    """Build the symbol table for one parsed module."""
    return SymbolExtractor(module_path).extract(tree)
