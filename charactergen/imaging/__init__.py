# charactergen/imaging/__init__.py

"""
Image generation for character portraits.

- `base.py`: `ImageProvider` contract, `ImageResult`, `CLASS_DETAILS`
- `dalle_adapter.py`, `fal_adapter.py`: concrete backends
- `adapter.py`: `create_image_provider()` factory
"""
