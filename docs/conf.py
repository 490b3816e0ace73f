# Sphinx configuration for the neurosolve API reference.

import os
import sys

sys.path.insert(0, os.path.abspath(".."))

project = "neurosolve"
copyright = "2026, neurosolve developers"
author = "neurosolve developers"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.doctest",
    "sphinx.ext.intersphinx",
    "sphinx.ext.mathjax",
]

# Docstrings are NumPy style throughout
napoleon_google_docstring = False
napoleon_numpy_docstring = True
napoleon_attr_annotations = True

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "numpy": ("https://numpy.org/doc/stable/", None),
    "sympy": ("https://docs.sympy.org/latest/", None),
}

exclude_patterns = ["_build"]

html_theme = "sphinx_rtd_theme"
