"""Jinja2 rendering for template resources."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateError,
)

from idprov.core.errors import ConfigurationError


class TemplateRenderer:
    """
    Renders templates by name.

    Templates in ``template_dir`` shadow the ones shipped in
    ``idprov/templates``. Undefined variables are errors.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        loaders: list[Any] = []
        if template_dir is not None:
            loaders.append(FileSystemLoader(str(template_dir)))
        loaders.append(PackageLoader("idprov", "templates"))
        self._env = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )

    def render(self, source: str, variables: Mapping[str, Any]) -> str:
        try:
            template = self._env.get_template(source)
            return template.render(**variables)
        except TemplateError as exc:
            raise ConfigurationError(
                f"Template '{source}' could not be rendered", {"error": str(exc)}
            ) from exc
