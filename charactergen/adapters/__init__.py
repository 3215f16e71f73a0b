# charactergen/adapters/__init__.py

"""
Package initializer for `charactergen.adapters`.

Each module here implements the `ProviderClient` contract from `base.py`
for one LLM backend and exports a `get_adapter(config, **options)` factory:

- `anthropic_adapter.py`
- `openai_adapter.py`
- `mock_adapter.py`

This `__init__.py` is intentionally left empty so adapters stay lazily
importable through the registry in `adapter.py`.
"""
