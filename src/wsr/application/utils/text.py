from typing import Any

import yaml  # type: ignore
import yaml.constructor

# ---------- Frontmatter helpers ----------


class UniqueKeyLoader(yaml.SafeLoader):
    """Custom YAML loader that forbids duplicate keys."""

    def construct_mapping(self, node, deep=False):
        mapping = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if key in mapping:
                raise yaml.constructor.ConstructorError(
                    None, None, f"found duplicate key '{key}'", key_node.start_mark
                )
            mapping.add(key)
        return super().construct_mapping(node, deep)


class _LiteralDumper(yaml.SafeDumper):
    """Dumps multi-line strings as literal blocks."""


def _str_presenter(dumper, data):
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_LiteralDumper.add_representer(str, _str_presenter)


def parse_frontmatter(md_text: str) -> tuple[dict[str, Any], str]:
    """Parse YAML frontmatter from markdown text.
    Uses line-by-line parsing instead of regex for reliability.
    """
    # Handle potential BOM (Byte Order Mark)
    md_text = md_text.lstrip("\ufeff")

    lines = md_text.split("\n")

    # Check for opening ---
    if not lines or lines[0].strip() != "---":
        return {}, md_text

    # Find closing ---
    yaml_end_line = None
    for i, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            yaml_end_line = i
            break

    if yaml_end_line is None:
        # No closing ---, return empty
        return {}, md_text

    raw = "\n".join(lines[1:yaml_end_line])
    body = "\n".join(lines[yaml_end_line + 1 :])

    # Fix tabs (common user error)
    if "\t" in raw:
        raw = raw.replace("\t", "  ")

    try:
        meta = yaml.load(raw, Loader=UniqueKeyLoader) or {}
    except yaml.YAMLError as e:
        return {"__yaml_error__": str(e)}, md_text

    if not isinstance(meta, dict):
        return {"__yaml_error__": "frontmatter is not a mapping"}, md_text

    return meta, body


def scrub_internal_keys(d: Any) -> Any:
    """Recursively remove keys starting with __"""
    if isinstance(d, dict):
        return {
            k: scrub_internal_keys(v)
            for k, v in d.items()
            if not (isinstance(k, str) and k.startswith("__"))
        }
    elif isinstance(d, list):
        return [scrub_internal_keys(v) for v in d]
    return d


def rebuild_markdown_with_frontmatter(meta: dict[str, Any], body: str) -> str:
    clean_meta = scrub_internal_keys(meta)
    yaml_text = yaml.dump(
        clean_meta,
        Dumper=_LiteralDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=10**9,
    )
    return f"---\n{yaml_text}---\n{body}"


# ---------- Tags ----------


def normalize_tag(tag: Any) -> str:
    return str(tag).strip().lstrip("#")


def tags_from_meta(meta: dict[str, Any]) -> frozenset[str] | None:
    """Frontmatter tags as a set without leading '#'.

    Accepts a YAML list or a space/comma separated string. Returns None when
    the key is present but unusable, an empty set when it is absent.
    """
    raw = meta.get("tags")
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        raw = raw.replace(",", " ").split()
    if not isinstance(raw, (list, tuple, set)):
        return None
    return frozenset(t for t in (normalize_tag(x) for x in raw if x is not None) if t)


def format_tags(tags: frozenset[str] | set[str]) -> list[str]:
    """Frontmatter form of a tag set: sorted, '#'-prefixed."""
    return [f"#{t}" for t in sorted(tags)]
