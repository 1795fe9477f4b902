from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from adapters.dialect import SQLDialect
from query.result import VARIABLE_MESSAGE

PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")
_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?\d+\.\d+$")
_TIME_VARIABLES = {"start_time", "end_time"}


class InvalidVariablePosition(ValueError):
    def __init__(self, name: str, context: str):
        super().__init__(f"{VARIABLE_MESSAGE}: {{{name}}} is inside a {context}")
        self.name = name
        self.context = context


class MissingVariables(ValueError):
    def __init__(self, names: Sequence[str]):
        super().__init__("Missing variables: " + ", ".join(names))
        self.names = list(names)


@dataclass(frozen=True)
class Variable:
    name: str
    value: Any
    type: str = "string"

    @classmethod
    def infer(cls, name: str, value: Any) -> "Variable":
        coerced, kind = _coerce(name, value)
        return cls(name=name, value=coerced, type=kind)


def _coerce(name: str, value: Any) -> Tuple[Any, str]:
    if value is None:
        return None, "null"
    if isinstance(value, bool):
        return value, "boolean"
    if isinstance(value, int):
        return value, "number"
    if isinstance(value, float):
        return value, "number"
    if isinstance(value, datetime):
        return value, "datetime"
    if isinstance(value, date):
        return value, "date"
    if isinstance(value, (list, tuple)):
        return [_coerce(name, v)[0] for v in value], "list"
    text = str(value)
    if _INT_RE.match(text):
        return int(text), "number"
    if _FLOAT_RE.match(text):
        return float(text), "number"
    if name.endswith("_at") or name in _TIME_VARIABLES:
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return text, "string"
        if len(text) == 10:
            return parsed.date(), "date"
        return parsed, "datetime"
    return text, "string"


def extract_variables(template: str) -> List[str]:
    seen: List[str] = []
    for match in PLACEHOLDER_RE.finditer(template):
        if match.group(1) not in seen:
            seen.append(match.group(1))
    return seen


def bind_statement(template: str, variables: Mapping[str, Variable], dialect: SQLDialect) -> Tuple[str, List[Any]]:
    """Replace ``{name}`` placeholders with escaped literals or driver parameters.

    A supplied placeholder inside a string literal, quoted identifier or
    comment raises ``InvalidVariablePosition``. Unsupplied placeholders in
    those positions are plain text and stay as written; anywhere else they
    raise ``MissingVariables`` rather than running a partial statement.
    """
    found = list(PLACEHOLDER_RE.finditer(template))
    unsafe = dialect.unsafe_positions(template, [m.start() for m in found])
    matches = []
    missing: List[str] = []
    for m in found:
        if m.group(1) in variables:
            if m.start() in unsafe:
                raise InvalidVariablePosition(m.group(1), unsafe[m.start()])
            matches.append(m)
        elif m.start() not in unsafe and m.group(1) not in missing:
            missing.append(m.group(1))
    if missing:
        raise MissingVariables(missing)

    parts: List[str] = []
    params: List[Any] = []
    cursor = 0
    for m in matches:
        parts.append(template[cursor:m.start()])
        value = variables[m.group(1)].value
        if dialect.parameter_binding is None:
            parts.append(dialect.quote(value))
        elif isinstance(value, list):
            placeholders = []
            for item in value:
                params.append(item)
                placeholders.append(dialect.placeholder(len(params)))
            parts.append(", ".join(placeholders) or "NULL")
        else:
            params.append(value)
            parts.append(dialect.placeholder(len(params)))
        cursor = m.end()
    parts.append(template[cursor:])
    return "".join(parts), params


@dataclass(frozen=True)
class BoundStatement:
    text: str
    data_source_id: str
    params: Tuple[Any, ...] = ()

    @property
    def fingerprint(self) -> str:
        payload = json.dumps([self.data_source_id, self.text, list(self.params)], default=str, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Statement:
    template: str
    data_source_id: str
    variables: Mapping[str, Variable] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "variables", MappingProxyType(dict(self.variables)))

    @classmethod
    def build(cls, template: str, data_source_id: str, values: Optional[Mapping[str, Any]] = None) -> "Statement":
        """Statement for ``template`` with ``values`` typed by name.

        Only supplied names become variables; an explicit ``None`` binds NULL.
        """
        values = values or {}
        variables: Dict[str, Variable] = {}
        for name in extract_variables(template):
            if name in values:
                variables[name] = Variable.infer(name, values[name])
        return cls(template=template, data_source_id=data_source_id, variables=variables)

    def bind(self, dialect: SQLDialect) -> BoundStatement:
        text, params = bind_statement(self.template, self.variables, dialect)
        return BoundStatement(text=text, data_source_id=self.data_source_id, params=tuple(params))
