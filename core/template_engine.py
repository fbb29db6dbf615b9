# core/template_engine.py
"""
Template Engine for Contact Relay Emails
Resolves named Jinja2 templates from the templates directory, renders them
with the submission data and inlines CSS for email client compatibility
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from jinja2.exceptions import TemplateError, TemplateNotFound, TemplateSyntaxError, UndefinedError
from markupsafe import Markup, escape
import premailer

from core.exceptions import RenderError

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / 'templates'
TEMPLATE_SUFFIX = '.html'


@dataclass
class TemplateRenderResult:
    """Result of template rendering operation"""
    html: str
    template_name: str
    inline_css_applied: bool
    size_bytes: int
    render_time_ms: float


class TemplateEngine:
    """
    Renders email bodies from named templates

    Autoescaping is controlled per engine; when disabled, submitted values
    are interpolated into the HTML verbatim.
    """

    def __init__(self,
                 template_dir: Optional[Path] = None,
                 autoescape: bool = True,
                 enable_css_inlining: bool = True,
                 max_output_size: int = 1024 * 1024):
        """
        Initialize template engine

        Args:
            template_dir: Directory holding ``<name>.html`` templates
            autoescape: Whether interpolated values are HTML-escaped
            enable_css_inlining: Whether to inline CSS for email compatibility
            max_output_size: Maximum rendered size in bytes
        """
        self.template_dir = Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR
        self.autoescape = autoescape
        self.enable_css_inlining = enable_css_inlining
        self.max_output_size = max_output_size

        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(['html', 'xml']) if autoescape else False,
            undefined=StrictUndefined,  # Fail on undefined variables
            trim_blocks=True,
            lstrip_blocks=True,
            cache_size=100
        )
        self.env.filters['nl2br'] = self._nl2br_filter

        logger.info(f"TemplateEngine initialized from {self.template_dir} "
                    f"(autoescape={'on' if autoescape else 'off'})")

    def render(self, template_name: str, data: Dict[str, Any]) -> str:
        """Render a named template and return the HTML string"""
        return self.render_template(template_name, data).html

    def render_template(self, template_name: str, data: Dict[str, Any]) -> TemplateRenderResult:
        """
        Render a named template with the given data mapping

        Args:
            template_name: Template name without suffix (e.g. ``admin_notification``)
            data: Template variables

        Returns:
            TemplateRenderResult with rendered HTML and metadata

        Raises:
            RenderError: template missing, syntax error, undefined variable
        """
        start_time = datetime.now()
        filename = f"{template_name}{TEMPLATE_SUFFIX}"

        try:
            template = self.env.get_template(filename)
            rendered_html = template.render(**data)
        except TemplateNotFound as e:
            logger.error(f"Template not found: {e.name}")
            raise RenderError("Failed to render email template") from e
        except UndefinedError as e:
            logger.error(f"Template variable error in {filename}: {str(e)}")
            raise RenderError("Failed to render email template") from e
        except TemplateSyntaxError as e:
            logger.error(f"Template syntax error in {filename} line {e.lineno}: {e.message}")
            raise RenderError("Failed to render email template") from e
        except TemplateError as e:
            logger.error(f"Template rendering failed for {filename}: {str(e)}")
            raise RenderError("Failed to render email template") from e

        inline_css_applied = False
        if self.enable_css_inlining and rendered_html:
            rendered_html, inline_css_applied = self._inline_css(rendered_html)

        size_bytes = len(rendered_html.encode('utf-8'))
        if size_bytes > self.max_output_size:
            logger.error(f"Rendered {filename} is {size_bytes:,} bytes, limit is {self.max_output_size:,}")
            raise RenderError("Failed to render email template")

        render_time_ms = (datetime.now() - start_time).total_seconds() * 1000
        logger.debug(f"Template {filename} rendered in {render_time_ms:.2f}ms, size: {size_bytes:,} bytes")

        return TemplateRenderResult(
            html=rendered_html,
            template_name=template_name,
            inline_css_applied=inline_css_applied,
            size_bytes=size_bytes,
            render_time_ms=render_time_ms
        )

    def _inline_css(self, html_content: str):
        """
        Inline CSS styles for better email client compatibility
        """
        try:
            p = premailer.Premailer(
                html_content,
                remove_classes=False,  # Keep classes for fallback
                keep_style_tags=True,
                strip_important=False,
                allow_network=False,
                cssutils_logging_level=logging.CRITICAL
            )
            return p.transform(), True
        except Exception as e:
            logger.warning(f"CSS inlining failed: {str(e)}")
            return html_content, False

    def _nl2br_filter(self, value: Any):
        """
        Convert newlines to <br> while respecting the autoescape setting
        """
        if not isinstance(value, str):
            value = str(value)

        if self.autoescape:
            return Markup('<br>\n').join(escape(line) for line in value.split('\n'))
        return '<br>\n'.join(value.split('\n'))
