# FILE: httpkernel/rendering.py
from __future__ import annotations

import os
from typing import Any, Dict, Mapping, Optional, Protocol

from jinja2 import Environment, FileSystemLoader, select_autoescape


class Renderer(Protocol):
    """Turns a template file plus variables into text."""

    def render(self, template_path: str, variables: Mapping[str, Any]) -> str:
        ...


class Jinja2Renderer:
    """
    Renders templates with Jinja2.

    Each template is loaded through a FileSystemLoader rooted at its own
    directory, so `{% include %}` and `{% extends %}` resolve relative to it.
    HTML-like extensions are autoescaped.
    """

    def __init__(self, *, globals: Optional[Mapping[str, Any]] = None, trim_blocks: bool = True):
        self.globals: Dict[str, Any] = dict(globals or {})
        self.trim_blocks = trim_blocks
        self._envs: Dict[str, Environment] = {}

    def _env(self, directory: str) -> Environment:
        env = self._envs.get(directory)
        if env is None:
            env = Environment(
                loader=FileSystemLoader(directory),
                autoescape=select_autoescape(["html", "htm", "xml", "twig", "j2"]),
                trim_blocks=self.trim_blocks,
                lstrip_blocks=self.trim_blocks,
            )
            env.globals.update(self.globals)
            self._envs[directory] = env
        return env

    def render(self, template_path: str, variables: Mapping[str, Any]) -> str:
        path = os.path.abspath(template_path)
        template = self._env(os.path.dirname(path)).get_template(os.path.basename(path))
        return template.render(dict(variables))
