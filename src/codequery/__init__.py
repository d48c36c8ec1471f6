"""codequery: index code and markdown, answer questions over it with RAG."""
