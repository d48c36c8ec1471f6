"""codequery query pipeline: transformers, retriever, answerer, evaluator."""
