"""Inspect SafeTensors and GGUF files, tokenize text, compute BERT-style embeddings and run benchmarks."""

__version__ = "0.1.0"