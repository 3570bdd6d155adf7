"""
Service layer.
Services orchestrate state loading, the engine pipeline and persistence.
"""

from kag.services.kag_service import KagService

__all__ = ["KagService"]
