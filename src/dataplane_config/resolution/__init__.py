"""
Resolution pipeline: merge, coerce, validate, snapshot and the engine driving them.

Submodules are imported directly (``dataplane_config.resolution.resolver``);
this package root stays empty so the registry can depend on coercion and
validation without an import cycle.
"""
