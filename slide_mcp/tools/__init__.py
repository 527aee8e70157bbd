"""
One module per Slide tool domain. ``build_registry`` assembles the catalog.
"""
