"""Sphinx configuration for the Real Estate API reference.

Build with ``sphinx-build docs docs/_build`` after installing the ``docs``
extra. Route and ledger modules import the settings at import time, so
the build reads the same ``.env`` as the server.
"""

import os
import sys
from importlib.metadata import PackageNotFoundError, version as package_version

sys.path.insert(0, os.path.abspath(".."))

project = "Real Estate API"
author = "Real Estate Team"
copyright = "Real Estate Team"

try:
    release = package_version("realestate-api")
except PackageNotFoundError:
    release = "0.1.0"
version = ".".join(release.split(".")[:2])

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.intersphinx",
]

# Google-style Args/Returns/Raises sections
napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_use_rtype = False

autodoc_member_order = "bysource"
autodoc_typehints = "description"
autodoc_default_options = {"undoc-members": False}

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "pymongo": ("https://pymongo.readthedocs.io/en/stable", None),
}

exclude_patterns = ["_build"]
html_theme = "alabaster"
html_title = f"{project} {release}"
