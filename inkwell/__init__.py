"""Inkwell static site generator.

Inkwell turns a directory tree of documents with front matter into a
published site. Documents are Jinja2 templates; Markdown is converted to
HTML and SCSS/Sass to CSS after templating, and layouts from the site's
configuration directory wrap the result.

The main entry point is the CLI module, which builds a site, watches and
serves it during development, or scaffolds a new one.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
