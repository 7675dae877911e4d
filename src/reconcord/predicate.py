"""
Prédicats personnalisés des règles (``code_block``).

Le code saisi par l'utilisateur n'est jamais exécuté par l'interpréteur Python :
il est analysé avec ``ast`` puis évalué par un interpréteur restreint qui
n'accepte qu'une liste blanche de constructions.

Deux formes sont acceptées::

    source_value.lower() == target_value.lower()

    def rule_code_block(source_value, target_value):
        if norm(source_value) == norm(target_value):
            return True
        return ratio(source_value, target_value) >= 90

Le prédicat doit renvoyer exactement ``True`` ou ``False``.
"""

from __future__ import annotations

import ast
import operator
import textwrap
from typing import Any, Callable

from rapidfuzz import fuzz

from reconcord.errors import EngineError
from reconcord.normalize import is_missing, norm_text

MAX_STEPS = 10_000
MAX_SEQUENCE_LEN = 100_000
MAX_EXPONENT = 64
MAX_INT_BITS = 4096


class PredicateError(EngineError):
    """code_block invalide ou en échec pour une paire de valeurs."""


def _text(val: Any) -> str:
    return "" if is_missing(val) else str(val)


ALLOWED_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "lower": lambda s: _text(s).lower(),
    "upper": lambda s: _text(s).upper(),
    "strip": lambda s: _text(s).strip(),
    "norm": lambda s: norm_text(_text(s), remove_diacritics=True),
    "is_empty": is_missing,
    "ratio": lambda a, b: float(fuzz.ratio(_text(a), _text(b))),
    "partial_ratio": lambda a, b: float(fuzz.partial_ratio(_text(a), _text(b))),
    "token_set_ratio": lambda a, b: float(fuzz.token_set_ratio(_text(a), _text(b))),
}

ALLOWED_STR_METHODS = frozenset(
    {
        "lower",
        "upper",
        "casefold",
        "strip",
        "lstrip",
        "rstrip",
        "title",
        "startswith",
        "endswith",
        "replace",
        "split",
        "count",
        "find",
        "zfill",
        "isdigit",
        "isalpha",
        "isalnum",
        "isspace",
    }
)

_BIN_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type, Callable[[Any], Any]] = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_CMP_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_ALLOWED_NODES: tuple[type, ...] = (
    ast.Expression,
    ast.Expr,
    ast.If,
    ast.Return,
    ast.Assign,
    ast.Pass,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.BinOp,
    ast.UnaryOp,
    ast.Compare,
    ast.IfExp,
    ast.Call,
    ast.Name,
    ast.Load,
    ast.Store,
    ast.Constant,
    ast.Subscript,
    ast.Slice,
    ast.Tuple,
    ast.List,
    ast.Set,
    ast.Attribute,
    *_BIN_OPS,
    *_UNARY_OPS,
    *_CMP_OPS,
)

_CONSTANT_TYPES = (str, int, float, bool, type(None))


class _Check(ast.NodeVisitor):
    """Vérification statique : liste blanche de nœuds, noms et méthodes."""

    def generic_visit(self, node: ast.AST) -> None:
        if not isinstance(node, _ALLOWED_NODES):
            raise PredicateError(f"Construction non autorisée: {type(node).__name__}")
        super().generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id.startswith("_"):
            raise PredicateError(f"Nom non autorisé: {node.id}")
        self.generic_visit(node)

    def visit_Constant(self, node: ast.Constant) -> None:
        if not isinstance(node.value, _CONSTANT_TYPES):
            raise PredicateError(f"Constante non autorisée: {node.value!r}")

    def visit_Attribute(self, node: ast.Attribute) -> None:
        # uniquement sous la forme valeur.methode(...), vérifié dans visit_Call
        raise PredicateError(f"Attribut non autorisé: {node.attr}")

    def visit_Call(self, node: ast.Call) -> None:
        if node.keywords:
            raise PredicateError("Arguments nommés non autorisés")
        if any(isinstance(a, ast.Starred) for a in node.args):
            raise PredicateError("Arguments étoilés non autorisés")
        func = node.func
        if isinstance(func, ast.Name):
            if func.id not in ALLOWED_FUNCTIONS:
                raise PredicateError(f"Fonction non autorisée: {func.id}")
        elif isinstance(func, ast.Attribute):
            if func.attr not in ALLOWED_STR_METHODS:
                raise PredicateError(f"Méthode non autorisée: {func.attr}")
            self.visit(func.value)
        else:
            raise PredicateError("Appel non autorisé")
        for arg in node.args:
            self.visit(arg)

    def visit_Assign(self, node: ast.Assign) -> None:
        if len(node.targets) != 1 or not isinstance(node.targets[0], ast.Name):
            raise PredicateError("Seules les affectations simples (nom = expression) sont autorisées")
        self.generic_visit(node)

    def visit_Expr(self, node: ast.Expr) -> None:
        # docstring tolérée, aucune autre expression isolée
        if not (isinstance(node.value, ast.Constant) and isinstance(node.value.value, str)):
            raise PredicateError("Expression isolée non autorisée dans le corps de la fonction")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_size(value: Any) -> Any:
    """Refuse les entiers et séquences dépassant les limites d'évaluation."""
    if _is_int(value) and value.bit_length() > MAX_INT_BITS:
        raise PredicateError("Entier trop grand")
    if isinstance(value, (str, list, tuple, set)) and len(value) > MAX_SEQUENCE_LEN:
        raise PredicateError("Séquence trop longue")
    return value


def _check_method_result(target: str, method: str, args: list[Any]) -> None:
    """Borne la taille du texte produit par zfill / replace avant l'appel."""
    if method == "zfill" and args and _is_int(args[0]) and args[0] > MAX_SEQUENCE_LEN:
        raise PredicateError("Séquence trop longue")
    if method == "replace" and len(args) >= 2 and isinstance(args[0], str) and isinstance(args[1], str):
        old, new = args[0], args[1]
        occurrences = target.count(old) if old else len(target) + 1
        if len(args) >= 3 and _is_int(args[2]) and args[2] >= 0:
            occurrences = min(occurrences, args[2])
        if len(target) + occurrences * (len(new) - len(old)) > MAX_SEQUENCE_LEN:
            raise PredicateError("Séquence trop longue")


class _Evaluator:
    """Évaluation d'un prédicat pour une paire ; une instance par appel."""

    def __init__(self, env: dict[str, Any]) -> None:
        self.env = env
        self.steps = 0

    def _tick(self) -> None:
        self.steps += 1
        if self.steps > MAX_STEPS:
            raise PredicateError("Budget d'évaluation dépassé")

    def run_block(self, stmts: list[ast.stmt]) -> tuple[bool, Any]:
        for stmt in stmts:
            self._tick()
            if isinstance(stmt, ast.If):
                branch = stmt.body if self.eval(stmt.test) else stmt.orelse
                done, value = self.run_block(branch)
                if done:
                    return True, value
            elif isinstance(stmt, ast.Return):
                return True, self.eval(stmt.value) if stmt.value is not None else None
            elif isinstance(stmt, ast.Assign):
                target = stmt.targets[0]
                assert isinstance(target, ast.Name)
                self.env[target.id] = self.eval(stmt.value)
        return False, None

    def eval(self, node: ast.expr) -> Any:
        self._tick()
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            if node.id not in self.env:
                raise PredicateError(f"Nom inconnu: {node.id}")
            return self.env[node.id]
        if isinstance(node, ast.BoolOp):
            value: Any = None
            for operand in node.values:
                value = self.eval(operand)
                if isinstance(node.op, ast.And) and not value:
                    return value
                if isinstance(node.op, ast.Or) and value:
                    return value
            return value
        if isinstance(node, ast.BinOp):
            left = self.eval(node.left)
            right = self.eval(node.right)
            return self._binop(node.op, left, right)
        if isinstance(node, ast.UnaryOp):
            return _UNARY_OPS[type(node.op)](self.eval(node.operand))
        if isinstance(node, ast.Compare):
            left = self.eval(node.left)
            for op, comparator in zip(node.ops, node.comparators):
                right = self.eval(comparator)
                if not _CMP_OPS[type(op)](left, right):
                    return False
                left = right
            return True
        if isinstance(node, ast.IfExp):
            return self.eval(node.body) if self.eval(node.test) else self.eval(node.orelse)
        if isinstance(node, ast.Subscript):
            container = self.eval(node.value)
            if not isinstance(container, (str, list, tuple)):
                raise PredicateError(f"Indexation non autorisée sur {type(container).__name__}")
            if isinstance(node.slice, ast.Slice):
                key: Any = slice(
                    self.eval(node.slice.lower) if node.slice.lower else None,
                    self.eval(node.slice.upper) if node.slice.upper else None,
                    self.eval(node.slice.step) if node.slice.step else None,
                )
            else:
                key = self.eval(node.slice)
            return container[key]
        if isinstance(node, ast.Tuple):
            return tuple(self.eval(e) for e in node.elts)
        if isinstance(node, ast.List):
            return [self.eval(e) for e in node.elts]
        if isinstance(node, ast.Set):
            return {self.eval(e) for e in node.elts}
        if isinstance(node, ast.Call):
            return self._call(node)
        raise PredicateError(f"Construction non autorisée: {type(node).__name__}")

    def _binop(self, op: ast.operator, left: Any, right: Any) -> Any:
        if isinstance(op, ast.Add) and isinstance(left, (str, list, tuple)) and isinstance(right, (str, list, tuple)):
            if len(left) + len(right) > MAX_SEQUENCE_LEN:
                raise PredicateError("Séquence trop longue")
        if isinstance(op, ast.Mult):
            for seq, n in ((left, right), (right, left)):
                if isinstance(seq, (str, list, tuple)) and isinstance(n, int) and len(seq) * n > MAX_SEQUENCE_LEN:
                    raise PredicateError("Séquence trop longue")
            if _is_int(left) and _is_int(right) and left.bit_length() + right.bit_length() > MAX_INT_BITS:
                raise PredicateError("Entier trop grand")
        if isinstance(op, ast.Pow) and isinstance(right, (int, float)):
            if abs(right) > MAX_EXPONENT:
                raise PredicateError("Exposant trop grand")
            # la taille du résultat dépend aussi de la base
            if _is_int(left) and _is_int(right) and right > 0 and abs(left).bit_length() * right > MAX_INT_BITS:
                raise PredicateError("Entier trop grand")
        return _check_size(_BIN_OPS[type(op)](left, right))

    def _call(self, node: ast.Call) -> Any:
        args = [self.eval(a) for a in node.args]
        func = node.func
        if isinstance(func, ast.Name):
            return _check_size(ALLOWED_FUNCTIONS[func.id](*args))
        assert isinstance(func, ast.Attribute)
        target = self.eval(func.value)
        if not isinstance(target, str):
            raise PredicateError(f"Méthode {func.attr} appelée sur {type(target).__name__}")
        _check_method_result(target, func.attr, args)
        return _check_size(getattr(target, func.attr)(*args))


class Predicate:
    """
    code_block compilé une fois, évaluable en parallèle.

    Raises:
        PredicateError: À la compilation si le code est mal formé ou non autorisé.
    """

    def __init__(self, source: str) -> None:
        self.source = source
        self._expr: ast.expr | None = None
        self._body: list[ast.stmt] = []
        self._params: tuple[str, str] = ("source_value", "target_value")

        text = textwrap.dedent(source or "").strip()
        if not text:
            raise PredicateError("code_block vide")
        try:
            tree = ast.parse(text, mode="exec")
        except SyntaxError as e:
            raise PredicateError(f"Erreur de syntaxe ligne {e.lineno}: {e.msg}") from e

        stmts = [s for s in tree.body if not _is_docstring(s)]
        if len(stmts) == 1 and isinstance(stmts[0], ast.Expr):
            self._expr = stmts[0].value
            _Check().visit(ast.Expression(body=self._expr))
        elif len(stmts) == 1 and isinstance(stmts[0], ast.FunctionDef):
            fn = stmts[0]
            self._params = _function_params(fn)
            self._body = fn.body
            checker = _Check()
            for stmt in self._body:
                checker.visit(stmt)
        else:
            raise PredicateError(
                "code_block doit être une expression ou une unique fonction rule_code_block(source_value, target_value)"
            )

    def __call__(self, source_value: Any, target_value: Any) -> bool:
        env = {self._params[0]: source_value, self._params[1]: target_value}
        evaluator = _Evaluator(env)
        try:
            if self._expr is not None:
                result = evaluator.eval(self._expr)
            else:
                _, result = evaluator.run_block(self._body)
        except PredicateError:
            raise
        except Exception as e:
            raise PredicateError(f"Échec du prédicat: {type(e).__name__}: {e}") from e
        if result is not True and result is not False:
            raise PredicateError(f"Le prédicat doit renvoyer un booléen (got {type(result).__name__})")
        return result


def _is_docstring(stmt: ast.stmt) -> bool:
    return isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Constant) and isinstance(stmt.value.value, str)


def _function_params(fn: ast.FunctionDef) -> tuple[str, str]:
    args = fn.args
    if fn.decorator_list:
        raise PredicateError("Décorateurs non autorisés")
    if (
        len(args.args) != 2
        or args.vararg
        or args.kwarg
        or args.kwonlyargs
        or args.posonlyargs
        or args.defaults
    ):
        raise PredicateError("La fonction doit prendre exactement (source_value, target_value)")
    names = (args.args[0].arg, args.args[1].arg)
    for name in names:
        if name.startswith("_"):
            raise PredicateError(f"Nom non autorisé: {name}")
    return names


def compile_predicate(source: str | None) -> Predicate | None:
    """Compile un code_block ; None si absent ou vide."""
    if source is None or not str(source).strip():
        return None
    return Predicate(str(source))
