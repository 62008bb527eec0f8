"""Room configuration data forms.

Editable fields are addressed by short tags (``field1``, ``field2``, ...)
which double as slash commands while a room configuration window is focused.
"""
from __future__ import annotations

import dataclasses
from typing import Any, Dict, List, Optional

FIELD_TYPES = (
    "hidden",
    "text-single",
    "text-private",
    "text-multi",
    "boolean",
    "list-single",
    "list-multi",
    "jid-single",
    "jid-multi",
    "fixed",
)

SINGLE_VALUE_TYPES = ("text-single", "text-private", "jid-single")
MULTI_VALUE_TYPES = ("text-multi", "list-multi", "jid-multi")


@dataclasses.dataclass
class FormOption:
    value: str
    label: str = ""


@dataclasses.dataclass
class FormField:
    var: str
    type: str = "text-single"
    label: str = ""
    description: str = ""
    required: bool = False
    values: List[str] = dataclasses.field(default_factory=list)
    options: List[FormOption] = dataclasses.field(default_factory=list)
    tag: str = ""

    @property
    def editable(self) -> bool:
        return bool(self.var) and self.type not in ("hidden", "fixed")

    def option_values(self) -> List[str]:
        return [o.value for o in self.options]


@dataclasses.dataclass
class DataForm:
    form_type: str = "form"
    title: str = ""
    instructions: str = ""
    fields: List[FormField] = dataclasses.field(default_factory=list)
    modified: bool = False

    def __post_init__(self) -> None:
        self._assign_tags()

    def _assign_tags(self) -> None:
        n = 1
        for f in self.fields:
            if f.editable:
                f.tag = f"field{n}"
                n += 1
            else:
                f.tag = ""

    # ── Lookup ────────────────────────────────────────────────────────────────

    def tags(self) -> List[str]:
        return [f.tag for f in self.fields if f.tag]

    def tag_exists(self, tag: str) -> bool:
        return self._field(tag) is not None

    def _field(self, tag: str) -> Optional[FormField]:
        return next((f for f in self.fields if f.tag and f.tag == tag), None)

    def field(self, tag: str) -> FormField:
        found = self._field(tag)
        if found is None:
            raise KeyError(tag)
        return found

    def field_type(self, tag: str) -> str:
        return self.field(tag).type

    def values(self, tag: str) -> List[str]:
        return list(self.field(tag).values)

    def has_option(self, tag: str, value: str) -> bool:
        return value in self.field(tag).option_values()

    # ── Mutation ──────────────────────────────────────────────────────────────

    def set_value(self, tag: str, value: str) -> None:
        f = self.field(tag)
        if f.type == "boolean":
            value = "1" if value in ("1", "true", "on") else "0"
        f.values = [value]
        self.modified = True

    def add_value(self, tag: str, value: str) -> None:
        self.field(tag).values.append(value)
        self.modified = True

    def add_unique_value(self, tag: str, value: str) -> bool:
        f = self.field(tag)
        if value in f.values:
            return False
        f.values.append(value)
        self.modified = True
        return True

    def remove_value(self, tag: str, value: str) -> bool:
        f = self.field(tag)
        if value not in f.values:
            return False
        f.values.remove(value)
        self.modified = True
        return True

    def remove_text_multi_value(self, tag: str, index: int) -> bool:
        """Remove the value shown as ``valN`` (1-based) from a text-multi field."""
        f = self.field(tag)
        if index < 1 or index > len(f.values):
            return False
        del f.values[index - 1]
        self.modified = True
        return True

    # ── Display ───────────────────────────────────────────────────────────────

    def render(self) -> List[str]:
        lines: List[str] = []
        if self.title:
            lines.append(f"Form title: {self.title}")
        for instruction in self.instructions.splitlines():
            lines.append(instruction)
        lines.append("")
        for f in self.fields:
            lines.extend(self.render_field(f))
        return lines

    def render_field(self, f: FormField) -> List[str]:
        if f.type == "hidden":
            return []
        if f.type == "fixed":
            return [f"  {v}" for v in f.values] or ([f"  {f.label}"] if f.label else [])

        required = " (required)" if f.required else ""
        head = f"[{f.tag}] {f.label or f.var}{required}:"
        if f.type == "text-private":
            return [f"{head} {'*' * len(f.values[0]) if f.values else ''}"]
        if f.type in ("text-single", "jid-single"):
            return [f"{head} {f.values[0] if f.values else ''}"]
        if f.type == "boolean":
            on = bool(f.values) and f.values[0] in ("1", "true")
            return [f"{head} {'TRUE' if on else 'FALSE'}"]
        if f.type == "list-single":
            current = f.values[0] if f.values else ""
            out = [head]
            for o in f.options:
                mark = "<" if o.value == current else " "
                out.append(f"    [{o.value}] {o.label or o.value} {mark}".rstrip())
            return out
        if f.type == "list-multi":
            out = [head]
            for o in f.options:
                mark = "<" if o.value in f.values else " "
                out.append(f"    [{o.value}] {o.label or o.value} {mark}".rstrip())
            return out
        if f.type == "text-multi":
            return [head] + [f"    [val{i}] {v}" for i, v in enumerate(f.values, start=1)]
        if f.type == "jid-multi":
            return [head] + [f"    {v}" for v in f.values]
        return [f"{head} {' '.join(f.values)}"]

    def field_help(self, tag: str) -> List[str]:
        f = self.field(tag)
        lines = [f"{tag} ({f.type}): {f.label or f.var}"]
        if f.description:
            lines.append(f"  {f.description}")
        if f.type in SINGLE_VALUE_TYPES:
            lines.append(f"  /{tag} <value>")
        elif f.type == "boolean":
            lines.append(f"  /{tag} on|off")
        elif f.type == "list-single":
            lines.append(f"  /{tag} <value>")
            lines.append(f"  where <value> is one of: {', '.join(f.option_values())}")
        elif f.type == "list-multi":
            lines.append(f"  /{tag} add <value>")
            lines.append(f"  /{tag} remove <value>")
            lines.append(f"  where <value> is one of: {', '.join(f.option_values())}")
        elif f.type == "text-multi":
            lines.append(f"  /{tag} add <value>")
            lines.append(f"  /{tag} remove <value>")
            lines.append("  where <value> is the index of a value, e.g. val3")
        elif f.type == "jid-multi":
            lines.append(f"  /{tag} add <jid>")
            lines.append(f"  /{tag} remove <jid>")
        return lines

    # ── Wire format ───────────────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "form_type": self.form_type,
            "title": self.title,
            "instructions": self.instructions,
            "fields": [
                {
                    "var": f.var,
                    "type": f.type,
                    "label": f.label,
                    "description": f.description,
                    "required": f.required,
                    "values": list(f.values),
                    "options": [dataclasses.asdict(o) for o in f.options],
                }
                for f in self.fields
            ],
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> DataForm:
        fields = []
        for raw in data.get("fields", []):
            ftype = raw.get("type", "text-single")
            if ftype not in FIELD_TYPES:
                raise ValueError(f"Unknown form field type: {ftype}")
            fields.append(FormField(
                var=raw.get("var", ""),
                type=ftype,
                label=raw.get("label", ""),
                description=raw.get("description", ""),
                required=bool(raw.get("required", False)),
                values=[str(v) for v in raw.get("values", [])],
                options=[FormOption(value=str(o["value"]), label=o.get("label", ""))
                         for o in raw.get("options", [])],
            ))
        return DataForm(
            form_type=data.get("form_type", "form"),
            title=data.get("title", ""),
            instructions=data.get("instructions", ""),
            fields=fields,
        )
