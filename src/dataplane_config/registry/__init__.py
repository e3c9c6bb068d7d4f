"""
Parameter registry: field descriptors, declarations and lookups.

Import from the submodules (``registry.descriptors``, ``registry.registry``);
the coercion layer depends on the descriptor types while the registry depends
on coercion, so this package root re-exports nothing.
"""
