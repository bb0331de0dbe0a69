"""
News RAG Query Cache

Answers natural-language questions over a rolling corpus of news articles
using retrieval-augmented generation, with a query cache that is warmed
from popular queries and trending topics.
"""

__version__ = "0.1.0"
