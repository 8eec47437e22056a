"""pkgctx: compile R and Python package sources into LLM-ready context.

Extracts a compact, deterministic record stream describing a package's public
API without installing or executing the package.
"""

__version__ = "0.3.0"
