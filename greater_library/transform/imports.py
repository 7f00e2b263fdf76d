"""Import path transformation.

Registry files are written against virtual locations: their own paths
(lib/..., shared/..., greater/...) and package specifiers
(@equaltoai/greater-components/...). This module maps both onto the aliases
configured in the consumer's components.json.

Mappings form an ordered rule list evaluated longest-prefix-first, matching
only on whole path segments, so adding an area means appending a rule.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from dataclasses import field
from pathlib import PurePosixPath
from typing import Literal

from greater_library.config.components import ComponentConfig
from greater_library.config.components import alias_to_relative_dir

logger = logging.getLogger(__name__)

PACKAGE_NAMESPACE = "@equaltoai/greater-components"

FileKind = Literal["script", "markup", "stylesheet"]
MappingKind = Literal["path", "import"]

# Registry path prefix -> alias key
PATH_PREFIX_ALIASES: list[tuple[str, str]] = [
    ("lib/primitives", "hooks"),
    ("lib", "lib"),
    ("shared", "components"),
    ("greater", "greater"),
]

# Package subpath -> alias key; legacy hyphenated packages map the same way
PACKAGE_ALIASES: list[tuple[str, str]] = [
    ("primitives", "ui"),
    ("headless", "hooks"),
    ("utils", "utils"),
    ("icons", "ui"),
    ("tokens", "ui"),
    ("adapters", "lib"),
    ("content", "ui"),
    ("faces/social", "ui"),
    ("shared", "components"),
]

SCRIPT_EXTENSIONS = {".ts", ".js", ".mjs", ".cjs", ".mts", ".cts", ".tsx", ".jsx"}
MARKUP_EXTENSIONS = {".svelte", ".html", ".vue"}
STYLESHEET_EXTENSIONS = {".css", ".scss", ".sass", ".less", ".pcss"}

_SPECIFIER = r"""(['"])([^'"]+)\1"""
SCRIPT_PATTERNS = [
    # import x from '...', import { a, b } from '...', import * as x from '...'
    re.compile(
        r"import\s+(?:type\s+)?(?:\{[^}]*\}|\*\s+as\s+[\w$]+|[\w$]+)"
        r"(?:\s*,\s*(?:\{[^}]*\}|\*\s+as\s+[\w$]+))?\s*from\s*" + _SPECIFIER
    ),
    # import '...'
    re.compile(r"import\s+" + _SPECIFIER),
    # import('...')
    re.compile(r"import\s*\(\s*" + _SPECIFIER + r"\s*\)"),
    # export { x } from '...', export * from '...'
    re.compile(r"export\s+(?:type\s+)?(?:\{[^}]*\}|\*(?:\s+as\s+[\w$]+)?)\s*from\s*" + _SPECIFIER),
    # require('...')
    re.compile(r"require\s*\(\s*" + _SPECIFIER + r"\s*\)"),
]
STYLESHEET_PATTERNS = [
    # @import '...', @import url('...')
    re.compile(r"@import\s+(?:url\s*\(\s*)?" + _SPECIFIER + r"(?:\s*\))?"),
]
SCRIPT_BLOCK = re.compile(r"(<script\b[^>]*>)(.*?)(</script\s*>)", re.IGNORECASE | re.DOTALL)
STYLE_BLOCK = re.compile(r"(<style\b[^>]*>)(.*?)(</style\s*>)", re.IGNORECASE | re.DOTALL)


@dataclass
class PathMapping:
    """Rewrite rule from a virtual prefix to a local prefix.

    Attributes:
        source: Virtual prefix (registry path or package specifier)
        target: Local prefix (project-relative directory or import alias)
        kind: "path" for file locations, "import" for import specifiers
    """

    source: str
    target: str
    kind: MappingKind = "path"

    def apply(self, value: str) -> str | None:
        """Rewrite value if it is source or below it, else None."""
        if value == self.source:
            return self.target
        if value.startswith(self.source + "/"):
            return self.target + value[len(self.source) :]
        return None


@dataclass
class TransformResult:
    """Outcome of transforming one file."""

    content: str
    transformed_count: int = 0
    transformed_paths: list[tuple[str, str]] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return self.transformed_count > 0


@dataclass
class TransformSummary:
    changed_imports: int
    files_changed: int
    message: str


def _sorted(mappings: list[PathMapping]) -> list[PathMapping]:
    return sorted(mappings, key=lambda m: len(m.source), reverse=True)


def build_path_mappings(config: ComponentConfig) -> list[PathMapping]:
    """Derive rewrite rules from the project's aliases.

    Args:
        config: Project configuration

    Returns:
        Path and import rules, longest source first
    """
    aliases = config.aliases.as_dict()
    mappings: list[PathMapping] = []

    for prefix, alias_key in PATH_PREFIX_ALIASES:
        alias = aliases.get(alias_key)
        if alias:
            mappings.append(PathMapping(prefix, alias_to_relative_dir(alias).rstrip("/"), "path"))

    for subpath, alias_key in PACKAGE_ALIASES:
        alias = aliases.get(alias_key)
        if not alias:
            continue
        mappings.append(PathMapping(f"{PACKAGE_NAMESPACE}/{subpath}", alias, "import"))
        if "/" not in subpath:
            mappings.append(PathMapping(f"{PACKAGE_NAMESPACE}-{subpath}", alias, "import"))

    return _sorted(mappings)


def transform_path(file_path: str, mappings: list[PathMapping]) -> str:
    """Map a registry path to its project-relative location.

    The longest matching path rule wins; unmatched paths are returned
    unchanged and install relative to the project root.

    Example:
        >>> transform_path("lib/primitives/button.ts", mappings)
        'src/lib/primitives/button.ts'
    """
    for mapping in _sorted([m for m in mappings if m.kind == "path"]):
        mapped = mapping.apply(file_path)
        if mapped is not None:
            return mapped
    return file_path


def transform_specifier(specifier: str, mappings: list[PathMapping]) -> str | None:
    """Map an import specifier, or None when no rule applies."""
    for mapping in _sorted([m for m in mappings if m.kind == "import"]):
        mapped = mapping.apply(specifier)
        if mapped is not None:
            return mapped
    return None


def has_greater_imports(content: str) -> bool:
    return PACKAGE_NAMESPACE in content


def detect_file_kind(file_path: str, content: str | None = None) -> FileKind | None:
    """Choose how a file's imports are parsed, from its extension.

    Returns:
        File kind, or None for files whose imports are not rewritten
    """
    suffix = PurePosixPath(file_path).suffix.lower()
    if suffix in MARKUP_EXTENSIONS:
        return "markup"
    if suffix in STYLESHEET_EXTENSIONS:
        return "stylesheet"
    if suffix in SCRIPT_EXTENSIONS:
        return "script"
    if content is not None and "<script" in content:
        return "markup"
    return None


def _rewrite(content: str, patterns: list[re.Pattern], mappings: list[PathMapping], result: TransformResult) -> str:
    for pattern in patterns:

        def replace(match: re.Match) -> str:
            specifier = match.group(2)
            mapped = transform_specifier(specifier, mappings)
            if mapped is None:
                return match.group(0)
            result.transformed_count += 1
            result.transformed_paths.append((specifier, mapped))
            text = match.group(0)
            start = match.start(2) - match.start(0)
            return text[:start] + mapped + text[start + len(specifier) :]

        content = pattern.sub(replace, content)
    return content


def transform_imports(content: str, mappings: list[PathMapping], file_kind: FileKind | None) -> TransformResult:
    """Rewrite registry import specifiers to the project's aliases.

    Only specifiers under the registry package namespace are touched.

    Args:
        content: File text
        mappings: Rules from build_path_mappings
        file_kind: script, markup (script and style blocks) or stylesheet;
            None leaves the content unchanged

    Returns:
        TransformResult with the new content and what changed
    """
    result = TransformResult(content=content)
    if file_kind is None or not has_greater_imports(content):
        return result

    if file_kind == "script":
        result.content = _rewrite(content, SCRIPT_PATTERNS, mappings, result)
    elif file_kind == "stylesheet":
        result.content = _rewrite(content, STYLESHEET_PATTERNS, mappings, result)
    else:

        def script_block(match: re.Match) -> str:
            return match.group(1) + _rewrite(match.group(2), SCRIPT_PATTERNS, mappings, result) + match.group(3)

        def style_block(match: re.Match) -> str:
            return match.group(1) + _rewrite(match.group(2), STYLESHEET_PATTERNS, mappings, result) + match.group(3)

        transformed = SCRIPT_BLOCK.sub(script_block, content)
        result.content = STYLE_BLOCK.sub(style_block, transformed)

    if result.has_changes:
        logger.debug(f"Rewrote {result.transformed_count} import(s)")
    return result


def get_transform_summary(results: list[TransformResult]) -> TransformSummary:
    """Totals for dry-run and install reporting."""
    changed = sum(r.transformed_count for r in results)
    files = sum(1 for r in results if r.has_changes)
    if changed == 0:
        message = "No import transformations needed"
    else:
        message = f"Transformed {changed} import(s) across {files} file(s)"
    return TransformSummary(changed_imports=changed, files_changed=files, message=message)
