from .schemas import ItemMetadata, ItemType, KnowledgeItem, RetrievalResult

__all__ = ["ItemMetadata", "ItemType", "KnowledgeItem", "RetrievalResult"]
