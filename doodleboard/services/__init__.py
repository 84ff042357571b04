# Services module; submodules are imported where needed.
