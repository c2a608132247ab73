from advisor_router.search.augmenter import WebSearchAugmenter

__all__ = ["WebSearchAugmenter"]
