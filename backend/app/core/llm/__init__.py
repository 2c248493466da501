from app.core.llm.service import create_llm, get_provider_router

__all__ = ["create_llm", "get_provider_router"]
