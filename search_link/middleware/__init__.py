from search_link.middleware import index

__all__ = ["index"]
