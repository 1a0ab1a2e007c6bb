"""
MLX poems package.

Provides:
- A model session controller that loads (or downloads) an MLX model and
  streams poem generation to subscribers
- A command-line runner and a FastAPI front end
"""
