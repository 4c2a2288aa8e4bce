"""
Template engine - Jinja2 environment for the built-in pages.

Example:
    engine = TemplateEngine()
    html = await engine.render("index.html", {"count": 3})
    response = await engine.render_to_response("index.html", {"count": 3})
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, PackageLoader, select_autoescape

from .response import Response


class TemplateEngine:
    """
    Async Jinja2 rendering.

    Templates ship inside the ``hxforge`` package; ``search_paths`` are
    consulted first so an application can override any of them.
    """

    def __init__(self, search_paths: Optional[list] = None, *, globals: Optional[Mapping[str, Any]] = None):
        loaders = [FileSystemLoader(str(p)) for p in (search_paths or [])]
        loaders.append(PackageLoader("hxforge", "templates"))
        self.env = Environment(
            loader=ChoiceLoader(loaders),
            autoescape=select_autoescape(
                enabled_extensions=["html", "htm", "xml"],
                default_for_string=True,
            ),
            enable_async=True,
        )
        if globals:
            self.env.globals.update(globals)

    async def render(self, template_name: str, context: Optional[Mapping[str, Any]] = None) -> str:
        template = self.env.get_template(template_name)
        return await template.render_async(**dict(context or {}))

    async def render_to_response(
        self,
        template_name: str,
        context: Optional[Mapping[str, Any]] = None,
        status: int = 200,
    ) -> Response:
        return Response.html(await self.render(template_name, context), status=status)


__all__ = ["TemplateEngine"]
