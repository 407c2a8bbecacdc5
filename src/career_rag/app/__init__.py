"""career_rag.app

Composition root and HTTP service surface.
"""
