import re
from typing import List, Tuple, Union

# Fields available to an output name template: {{.Id}}, {{.Ip}}, {{.Port}}
FIELDS = ("Id", "Ip", "Port")

# Placeholder binding used to validate a template before listening.
CHECK_BINDING = {"Id": 1, "Ip": "127.0.0.1", "Port": 8080}

_ACTION_RE = re.compile(r'\{\{(.*?)\}\}', re.S)
_FIELD_RE = re.compile(r'\s*\.([A-Za-z_][A-Za-z0-9_]*)\s*')


class TemplateError(ValueError):
    pass


class NameTemplate:
    """
    Compiled output name template.

    Text outside {{ }} is copied as-is; every action must be a single field
    reference such as {{.Id}} or {{ .Ip }}. Parse problems raise
    TemplateError from compile(); references to unknown fields raise it
    from render(), so check() against CHECK_BINDING catches both up front.
    """

    def __init__(self, pattern: str, parts: List[Union[str, Tuple[str]]]):
        self.pattern = pattern
        self._parts = parts

    @classmethod
    def compile(cls, pattern: str) -> "NameTemplate":
        parts: List[Union[str, Tuple[str]]] = []
        pos = 0
        for m in _ACTION_RE.finditer(pattern):
            text = pattern[pos:m.start()]
            if '{{' in text:
                raise TemplateError(f"template: {pattern!r}: unclosed action")
            if text:
                parts.append(text)
            fm = _FIELD_RE.fullmatch(m.group(1))
            if not fm:
                raise TemplateError(
                    f"template: {pattern!r}: bad action {m.group(0)!r}")
            parts.append((fm.group(1),))
            pos = m.end()
        tail = pattern[pos:]
        if '{{' in tail:
            raise TemplateError(f"template: {pattern!r}: unclosed action")
        if tail:
            parts.append(tail)
        return cls(pattern, parts)

    def render(self, binding: dict) -> str:
        out = []
        for p in self._parts:
            if isinstance(p, str):
                out.append(p)
                continue
            name = p[0]
            if name not in FIELDS or name not in binding:
                raise TemplateError(
                    f"template: {self.pattern!r}: can't evaluate field {name}")
            out.append(str(binding[name]))
        return "".join(out)

    def check(self) -> str:
        return self.render(CHECK_BINDING)


def check_template(pattern: str) -> NameTemplate:
    t = NameTemplate.compile(pattern)
    t.check()
    return t
