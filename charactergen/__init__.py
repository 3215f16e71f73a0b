# charactergen/__init__.py

"""
Root package initializer for `charactergen`, the provider layer of a D&D
character generator.

Submodules are imported explicitly where they are needed (see
`charactergen.service` for the call-style API and `charactergen.main` for
the FastAPI app), so nothing is re-exported here.
"""
