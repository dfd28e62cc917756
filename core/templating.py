"""Placeholder rendering and schema validation for stored prompts.

Templates use ``{{ name }}`` placeholders. Rendering is a single pass: text
substituted for a placeholder is never scanned again, and names without a
value render as empty strings.

Updates: v0.2.1 - 2026-10-19 - Validate provider output against output schemas.
Updates: v0.2.0 - 2026-09-14 - Validate prompt variables against stored input schemas.
Updates: v0.1.0 - 2026-09-03 - Add single-pass placeholder renderer.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from jsonschema import Draft202012Validator, exceptions as jsonschema_exceptions

if TYPE_CHECKING:  # pragma: no cover - typing helpers
    from models.prompt_model import PromptSchema

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass(slots=True)
class TemplateRenderResult:
    """Outcome of rendering a template."""

    rendered_text: str
    missing_variables: set[str] = field(default_factory=set)


class TemplateRenderer:
    """Render ``{{ name }}`` placeholders against a variable mapping."""

    def __init__(self, pattern: re.Pattern[str] = PLACEHOLDER_PATTERN) -> None:
        self._pattern = pattern

    def extract_variables(self, template_text: str) -> list[str]:
        """Return sorted placeholder names referenced within ``template_text``."""
        return sorted({match.group(1) for match in self._pattern.finditer(template_text)})

    def render(self, template_text: str, variables: Mapping[str, Any]) -> TemplateRenderResult:
        """Substitute every placeholder once, recording names that had no value."""
        missing: set[str] = set()

        def _replace(match: re.Match[str]) -> str:
            name = match.group(1)
            value = variables.get(name)
            if value is None:
                missing.add(name)
                return ""
            return str(value)

        rendered = self._pattern.sub(_replace, template_text)
        return TemplateRenderResult(rendered_text=rendered, missing_variables=missing)


_DEFAULT_RENDERER = TemplateRenderer()


def render_template(template_text: str, variables: Mapping[str, Any]) -> str:
    """Return ``template_text`` with placeholders replaced from ``variables``.

    Example:
        >>> render_template("{{a}} and {{b}}", {"a": "x"})
        'x and '
    """
    return _DEFAULT_RENDERER.render(template_text, variables).rendered_text


def extract_variables(template_text: str) -> list[str]:
    """Return sorted unique placeholder names in ``template_text``."""
    return _DEFAULT_RENDERER.extract_variables(template_text)


@dataclass(slots=True)
class SchemaValidationResult:
    """Outcome of validating variables against an optional schema."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    field_errors: set[str] = field(default_factory=set)
    schema_error: str | None = None


class SchemaValidator:
    """Validate prompt variables and provider output against JSON Schema values."""

    def validate(
        self,
        instance: Any,
        schema: Mapping[str, Any] | str | None,
    ) -> SchemaValidationResult:
        """Validate ``instance`` against ``schema``.

        ``schema`` may be a decoded JSON object (as stored in a prompt's
        ``schema`` member) or JSON text. ``None`` and blank text accept anything.
        """
        if schema is None:
            return SchemaValidationResult(is_valid=True)

        parsed_schema: Any = schema
        if isinstance(schema, str):
            if not schema.strip():
                return SchemaValidationResult(is_valid=True)
            try:
                parsed_schema = json.loads(schema)
            except json.JSONDecodeError as exc:
                return SchemaValidationResult(
                    is_valid=False,
                    errors=[f"Invalid schema JSON: {exc.msg}"],
                    schema_error=str(exc),
                )

        if not isinstance(parsed_schema, Mapping):
            return SchemaValidationResult(
                is_valid=False,
                errors=["Schema must be a JSON object."],
                schema_error="Schema root is not an object",
            )

        try:
            Draft202012Validator.check_schema(parsed_schema)
        except jsonschema_exceptions.SchemaError as exc:
            return SchemaValidationResult(
                is_valid=False,
                errors=[f"Invalid JSON Schema: {exc.message}"],
                schema_error=str(exc),
            )

        validator = Draft202012Validator(parsed_schema)
        errors: list[str] = []
        field_errors: set[str] = set()
        for error in validator.iter_errors(instance):
            path = self._format_error_path(error.path)
            errors.append(f"{path}: {error.message}" if path else error.message)
            if path:
                field_errors.add(path)
        if errors:
            return SchemaValidationResult(is_valid=False, errors=errors, field_errors=field_errors)
        return SchemaValidationResult(is_valid=True)

    def validate_inputs(
        self,
        schema: PromptSchema | None,
        variables: Mapping[str, Any],
    ) -> SchemaValidationResult:
        """Validate chain or caller variables against ``schema.inputs``."""
        if schema is None:
            return SchemaValidationResult(is_valid=True)
        return self.validate(dict(variables), schema.inputs)

    def validate_output(self, schema: PromptSchema | None, text: str) -> SchemaValidationResult:
        """Validate a provider response against ``schema.output``.

        A ``{"type": "string"}`` schema checks the raw text; any other schema
        expects the response to be a JSON document.
        """
        if schema is None or schema.output is None:
            return SchemaValidationResult(is_valid=True)
        output_schema = schema.output
        if isinstance(output_schema, Mapping) and output_schema.get("type") == "string":
            return self.validate(text, output_schema)
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            return SchemaValidationResult(
                is_valid=False,
                errors=[f"Response is not valid JSON: {exc.msg}"],
            )
        return self.validate(document, output_schema)

    @staticmethod
    def _format_error_path(path: Sequence[Any]) -> str:
        return ".".join(str(part) for part in path)



__all__ = [
    "PLACEHOLDER_PATTERN",
    "SchemaValidationResult",
    "SchemaValidator",
    "TemplateRenderResult",
    "TemplateRenderer",
    "extract_variables",
    "render_template",
]
