"""configuration file for Sphinx documentation."""

import pathlib
import sys

src_path = pathlib.Path(__file__).parent.parent.parent / "src"
sys.path.insert(0, str(src_path))


project = "behavstates"
author = "behavstates developers"

release = "0.1.0"


extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.autosummary",
    "sphinx.ext.viewcode",
    "sphinx.ext.napoleon",
    "sphinx.ext.intersphinx",
    "sphinx_copybutton",
]
autosummary_generate = True
autosummary_imported_members = True

html_theme = "furo"

html_domain_indices = ["py-modindex"]
modindex_common_prefix = ["behavstates."]


napoleon_google_docstring = True
napoleon_include_init_with_doc = False
napoleon_include_private_with_doc = True


autodoc_default_options = {
    "members": True,
    "undoc-members": True,
    "show-inheritance": True,
}

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "numpy": ("https://numpy.org/doc/stable/", None),
    "polars": ("https://docs.pola.rs/api/python/stable/", None),
    "scipy": ("https://docs.scipy.org/doc/scipy/", None),
}
