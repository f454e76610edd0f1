"""
Boolean predicates over a pipeline item, for the `filter` operator.

Conditions are parsed by a small grammar and interpreted; nothing is handed
to eval() and the only names in scope are `item` and a few functions.

    item.score >= 0.5 && item.status != "draft"
    !(item.tags.length == 0) || contains(lower(item.title), "exam")
    date(item.due) > date("2024-01-01")

Grammar:
    expr       := or
    or         := and (("||" | "or") and)*
    and        := not (("&&" | "and") not)*
    not        := ("!" | "not") not | comparison
    comparison := operand (("==" | "===" | "!=" | "!==" | "<" | "<=" | ">" | ">=") operand)?
    operand    := literal | path | call | "(" expr ")"
    path       := "item" ("." NAME | "[" (NUMBER | STRING) "]")*
    call       := FUNCTION "(" (expr ("," expr)*)? ")"

A missing field evaluates to None. A comparison between values that cannot
be ordered (None < 3, "a" < 1) is False rather than an error.
"""
import re
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Tuple

from utils.exceptions import PredicateSyntaxError

_TOKEN_RE = re.compile(
	r"""\s*(?:
		(?P<number>-?\d+(?:\.\d+)?)
		|(?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
		|(?P<op>===|!==|==|!=|<=|>=|&&|\|\||[<>!().,\[\]])
		|(?P<name>[A-Za-z_][A-Za-z0-9_]*)
	)""",
	re.VERBOSE,
)

_COMPARISONS = {"==", "===", "!=", "!==", "<", "<=", ">", ">="}
_LITERALS = {"true": True, "True": True, "false": False, "False": False, "null": None, "None": None, "undefined": None}
_MISSING = object()


def _to_date(value: Any = _MISSING) -> Optional[datetime]:
	if value is _MISSING:
		return datetime.now(timezone.utc)
	if isinstance(value, datetime):
		parsed = value
	elif isinstance(value, (int, float)) and not isinstance(value, bool):
		# epoch milliseconds
		return datetime.fromtimestamp(value / 1000, timezone.utc)
	elif isinstance(value, str):
		try:
			parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
		except ValueError:
			return None
	else:
		return None
	return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _len(value: Any) -> Optional[int]:
	try:
		return len(value)
	except TypeError:
		return None


def _lower(value: Any) -> Any:
	return value.lower() if isinstance(value, str) else value


def _contains(container: Any, needle: Any) -> bool:
	try:
		return needle in container
	except TypeError:
		return False


FUNCTIONS = {
	"date": _to_date,
	"len": _len,
	"lower": _lower,
	"contains": _contains,
}


def _tokenize(source: str) -> List[Tuple[str, str]]:
	tokens = []
	pos = 0
	source = source.rstrip()
	while pos < len(source):
		match = _TOKEN_RE.match(source, pos)
		if not match or match.end() == pos:
			raise PredicateSyntaxError(f"Unexpected character at position {pos}: {source[pos:pos + 10]!r}")
		kind = match.lastgroup
		tokens.append((kind, match.group(kind)))
		pos = match.end()
	return tokens


def _unquote(raw: str) -> str:
	body = raw[1:-1]
	return re.sub(r"\\(.)", lambda m: {"n": "\n", "t": "\t"}.get(m.group(1), m.group(1)), body)


def _compare(op: str, left: Any, right: Any) -> bool:
	try:
		if op in ("==", "==="):
			return left == right
		if op in ("!=", "!=="):
			return left != right
		if left is None or right is None:
			return False
		if op == "<":
			return left < right
		if op == "<=":
			return left <= right
		if op == ">":
			return left > right
		return left >= right
	except TypeError:
		return False


def _step(value: Any, key: Any) -> Any:
	if value is None:
		return None
	if isinstance(value, dict):
		if key in value:
			return value[key]
		return len(value) if key == "length" else None
	if isinstance(value, (list, tuple, str)):
		if key == "length":
			return len(value)
		if isinstance(key, int) and -len(value) <= key < len(value):
			return value[key]
	return None


class _Parser:
	def __init__(self, source: str):
		self.source = source
		self.tokens = _tokenize(source)
		self.pos = 0

	def peek(self) -> Optional[str]:
		return self.tokens[self.pos][1] if self.pos < len(self.tokens) else None

	def take(self) -> Tuple[str, str]:
		if self.pos >= len(self.tokens):
			raise PredicateSyntaxError(f"Unexpected end of condition: {self.source!r}")
		token = self.tokens[self.pos]
		self.pos += 1
		return token

	def expect(self, value: str) -> None:
		kind, text = self.take()
		if text != value:
			raise PredicateSyntaxError(f"Expected {value!r} but found {text!r}")

	def parse(self) -> Callable[[Any], Any]:
		node = self.parse_or()
		if self.pos != len(self.tokens):
			raise PredicateSyntaxError(f"Unexpected {self.peek()!r} in condition: {self.source!r}")
		return node

	def parse_or(self):
		node = self.parse_and()
		while self.peek() in ("||", "or"):
			self.take()
			left, right = node, self.parse_and()
			node = lambda item, l=left, r=right: bool(l(item)) or bool(r(item))
		return node

	def parse_and(self):
		node = self.parse_not()
		while self.peek() in ("&&", "and"):
			self.take()
			left, right = node, self.parse_not()
			node = lambda item, l=left, r=right: bool(l(item)) and bool(r(item))
		return node

	def parse_not(self):
		if self.peek() in ("!", "not"):
			self.take()
			inner = self.parse_not()
			return lambda item: not inner(item)
		return self.parse_comparison()

	def parse_comparison(self):
		left = self.parse_operand()
		if self.peek() in _COMPARISONS:
			_, op = self.take()
			right = self.parse_operand()
			return lambda item: _compare(op, left(item), right(item))
		return left

	def parse_operand(self):
		kind, text = self.take()
		if kind == "number":
			value = float(text) if "." in text else int(text)
			return lambda item: value
		if kind == "string":
			value = _unquote(text)
			return lambda item: value
		if text == "(":
			node = self.parse_or()
			self.expect(")")
			return node
		if kind == "name":
			if text in _LITERALS:
				value = _LITERALS[text]
				return lambda item: value
			if text == "item":
				return self.parse_path()
			if text in FUNCTIONS and self.peek() == "(":
				return self.parse_call(FUNCTIONS[text])
			raise PredicateSyntaxError(f"Unknown name {text!r}; conditions may only reference `item` and {sorted(FUNCTIONS)}")
		raise PredicateSyntaxError(f"Unexpected {text!r} in condition: {self.source!r}")

	def parse_path(self):
		keys: List[Any] = []
		while self.peek() in (".", "["):
			_, text = self.take()
			if text == ".":
				kind, name = self.take()
				if kind != "name":
					raise PredicateSyntaxError(f"Expected a field name after '.', found {name!r}")
				keys.append(name)
			else:
				kind, raw = self.take()
				if kind == "number" and "." not in raw:
					keys.append(int(raw))
				elif kind == "string":
					keys.append(_unquote(raw))
				else:
					raise PredicateSyntaxError(f"Invalid index {raw!r}")
				self.expect("]")

		def resolve(item):
			value = item
			for key in keys:
				value = _step(value, key)
			return value

		return resolve

	def parse_call(self, func):
		self.expect("(")
		args = []
		if self.peek() != ")":
			args.append(self.parse_or())
			while self.peek() == ",":
				self.take()
				args.append(self.parse_or())
		self.expect(")")
		return lambda item: func(*(arg(item) for arg in args))


class Predicate:
	def __init__(self, source: str):
		if not source or not source.strip():
			raise PredicateSyntaxError("Filter condition is empty")
		self.source = source
		self._evaluate = _Parser(source).parse()

	def __call__(self, item: Any) -> bool:
		return bool(self._evaluate(item))

	def __repr__(self):
		return f"Predicate({self.source!r})"


def compile_predicate(source: str) -> Predicate:
	return Predicate(source)
