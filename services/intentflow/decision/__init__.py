"""
Decision package — catalog, template/content selection and overlays.

Modules
-------
catalog         Registry models, load_catalog() with embedded fallback
engine          DecisionEngine, DecisionResult
page_overrides  Page-type copy overrides (homepage/product/category/landing)
"""
